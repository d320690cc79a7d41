from setuptools import find_packages, setup

with open("README.md", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="flowtrace",
    version="0.1.0",
    description="OpenInference tracing for workflow engine executions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["flowtrace", "flowtrace.*"]),
    python_requires=">=3.10",
    install_requires=[
        "opentelemetry-api>=1.26.0",
        "opentelemetry-sdk>=1.26.0",
        "opentelemetry-instrumentation>=0.47b0",
        "opentelemetry-exporter-otlp-proto-http>=1.26.0",
        "opentelemetry-exporter-otlp-proto-grpc>=1.26.0",
        "openinference-semantic-conventions>=0.1.9",
        "openinference-instrumentation>=0.1.12",
        "wrapt>=1.14.0",
        "pydantic>=2.0",
    ],
    extras_require={
        "langchain": ["openinference-instrumentation-langchain>=0.1.20"],
        "test": ["pytest>=7.0", "pytest-asyncio>=0.21.0"],
    },
)
