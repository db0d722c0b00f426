from setuptools import find_packages, setup

setup(
    name="metadata-queue-core",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "aiohttp",
        "fastapi",
        "openai",
        "pydantic>=2",
        "python-dotenv",
        "PyYAML",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    include_package_data=True,
    description="Queue, search and notification core for AI image metadata generation",
)
