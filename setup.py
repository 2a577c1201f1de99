from setuptools import setup, find_packages

setup(
    name="trace-storage-dynamodb",
    version="0.1.0",
    description="DynamoDB-backed span storage with trace search, name autocomplete and service dependencies",
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["trace_storage*"]),
    install_requires=[
        "pydantic>=2.8.2",
        "pydantic-settings>=2.7.0",
        "python-dotenv",
        "boto3",
        "botocore",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
    ],
    python_requires='>=3.11,<3.14',
)
