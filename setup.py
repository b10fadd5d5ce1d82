from setuptools import setup, find_packages
import re
from pathlib import Path


def read_readme():
    this_directory = Path(__file__).parent
    readme_file = this_directory / 'README.md'
    if readme_file.exists():
        return readme_file.read_text(encoding='utf-8')
    return ""

def get_version():
    init_file = Path(__file__).parent / 'pgrows' / '__init__.py'
    if init_file.exists():
        content = init_file.read_text()
        match = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', content)
        if match:
            return match.group(1)
    return "0.3.0"


setup(
    name="pgrows",
    version=get_version(),
    description="Async PostgreSQL pool manager and parameterized insert/update/delete helpers.",
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    packages=find_packages(include=['pgrows', 'pgrows.*']),
    python_requires=">=3.11",
    install_requires=[
        "psycopg[binary]>=3.2",
        "psycopg-pool>=3.2",
        "pydantic>=2.5",
    ],
    extras_require={
        'test': [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
    ],
    keywords="postgresql psycopg pool sql upsert asyncio",
)
