from setuptools import setup, find_packages

setup(
    name="document-compiler",
    version="0.1.0",
    packages=find_packages(exclude=["*.tests", "*.tests.*"]),
    include_package_data=True,
    package_data={"document_compiler": ["config/*.yaml"]},
    python_requires=">=3.11",
    description="AI-assisted document template compilation with user edit reconciliation",
    install_requires=[
        "pyyaml",
        "python-dotenv",
        "google-generativeai",
        "anthropic",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "document-compiler=document_compiler.main:main",
        ],
    },
)
