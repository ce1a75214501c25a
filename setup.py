from setuptools import find_packages, setup

setup(
    name="dynamo-stream-archive",
    version="0.1.0",
    packages=find_packages(
        include=["dynamo_stream_archive", "dynamo_stream_archive.*"]
    ),
    python_requires=">=3.10",
    install_requires=["boto3>=1.26.0"],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
            "pytest-cov",
            "moto[s3,firehose,dynamodb,cloudwatch]>=5.0",
            "freezegun",
        ]
    },
)
