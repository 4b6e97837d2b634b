from functools import lru_cache

import boto3


@lru_cache(maxsize=None)
def get_dynamodb(region_name: str | None = None):
    return boto3.resource("dynamodb", region_name=region_name)


@lru_cache(maxsize=None)
def get_ses(region_name: str | None = None):
    return boto3.client("ses", region_name=region_name)
