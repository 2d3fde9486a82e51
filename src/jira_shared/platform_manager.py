#!/usr/bin/env python3
# platform_manager.py
"""
Helper functions for operations on the hosting platform.

On AWS, parameters come from SSM Parameter Store and Lambda functions are invoked
asynchronously through boto3. Locally (the default), parameters are read from
environment variables and Lambda invocations are simulated with a background thread.
"""

from __future__ import annotations

import importlib
import json
import logging
import os
import threading
from collections.abc import Iterable, Iterator
from typing import Any

import boto3

PLATFORM_ENV_VAR = "JIRA_AGENT_PLATFORM"


def is_aws_platform() -> bool:
    """Return True when running against real AWS services."""
    return os.getenv(PLATFORM_ENV_VAR, "local").lower() == "aws"


""" Parameters """


def _chunk(iterable: Iterable[str], size: int) -> Iterator[list[str]]:
    """
    Chunk an iterable into lists of size `size`.
    Used for SSM get_parameters batching because the API only allows up to 10 names at a time.
    """
    it = iter(iterable)
    while True:
        chunk = list([x for _, x in zip(range(size), it, strict=False)])
        if not chunk:
            break
        yield chunk


def _get_ssm_parameters(
    param_names: list[str], base_path: str, *, decrypt: bool, region_name: str
) -> dict[str, str | None]:
    ssm = boto3.client("ssm", region_name=region_name)

    # Normalize base_path (exactly one trailing slash)
    base = base_path.rstrip("/") + "/"

    # Pre-fill with None so missing params are explicit
    result: dict[str, str | None] = {name.lower(): None for name in param_names}

    # Build full paths and keep a reverse map to leaf
    to_fetch = [base + name.lower() for name in param_names]
    leaf_by_full = {base + name.lower(): name.lower() for name in param_names}

    for group in _chunk(to_fetch, 10):  # SSM get_parameters max 10 names
        resp = ssm.get_parameters(Names=group, WithDecryption=decrypt)

        for p in resp.get("Parameters", []):
            full = p["Name"]
            leaf = leaf_by_full.get(full, full)
            result[leaf] = p["Value"]

    return result


def get_parameters(
    param_names: list[str] | str,
    base_path: str,
    *,
    decrypt: bool = False,
    region_name: str = "us-east-1",
) -> dict[str, str | None]:
    """
    Retrieve parameters by leaf name.

    On AWS the values live under `base_path` in SSM Parameter Store. Locally they are
    read from environment variables named after the upper-cased leaf.

    Returns:
        dict[str, str | None]: Each requested (lower-cased) leaf name mapped to its value,
            or None when missing.
    """
    if isinstance(param_names, str):
        param_names = [param_names]

    if not param_names:
        return {}

    if is_aws_platform():
        return _get_ssm_parameters(
            param_names, base_path, decrypt=decrypt, region_name=region_name
        )

    result: dict[str, str | None] = {}
    for param_name in param_names:
        # Parameters are stored in the environment variables in uppercase
        # But we want to store them in lowercase in the result dictionary
        result[param_name.lower()] = os.getenv(param_name.upper())
    return result


""" Logging """


def create_logger(log_level: str = "INFO", logger_name: str = __name__) -> logging.Logger:
    """
    Create a logger that outputs to the console (CloudWatch on AWS).

    Args:
        log_level (str): Logging level (e.g., "INFO", "DEBUG").
        logger_name (str): Name for the logger instance.

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Check if the logger already has handlers to avoid duplication
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(handler)

    return logger


""" Lambda invocation """


def invoke_lambda(
    event: dict[str, Any],
    function_name: str,
    lambda_handler: str = "lambda_handler",
    local_module: str | None = None,
) -> None:
    """
    Asynchronously invoke a Lambda function by name (fire-and-forget).

    On AWS this uses boto3 with InvocationType="Event". Locally the handler is imported
    from `local_module` and run in a daemon thread, which mimics the async hand-off.

    Args:
        event (dict[str, Any]): The event payload to send to the target function.
        function_name (str): The name of the Lambda function to invoke.
        lambda_handler (str): The handler function name (local simulation only).
        local_module (str | None): Dotted module path holding the handler (local only).
    """
    if is_aws_platform():
        lambda_client = boto3.client("lambda")
        lambda_client.invoke(
            FunctionName=function_name,
            InvocationType="Event",  # async / fire-and-forget
            Payload=json.dumps(event).encode("utf-8"),
        )
        return

    logger = create_logger(logger_name="jira-agent-platform")
    if not local_module:
        raise ImportError(f"No local module configured for lambda function {function_name}")

    try:
        module = importlib.import_module(local_module)
        handler = getattr(module, lambda_handler)
    except (ModuleNotFoundError, AttributeError) as e:
        raise ImportError(f"Failed to import {lambda_handler} from {local_module}: {e}") from e

    def thread_wrapper() -> None:
        try:
            logger.debug(f"Thread {local_module}.{lambda_handler} starting execution")
            handler(event, None)
            logger.debug(f"Thread {local_module}.{lambda_handler} completed successfully")
        except Exception as e:
            logger.exception(f"Thread {local_module}.{lambda_handler} failed: {e}")

    thread = threading.Thread(target=thread_wrapper, daemon=True, name=f"{function_name}_handler")
    thread.start()
    logger.debug(f"Started thread for {local_module}.{lambda_handler} (thread_id: {thread.ident})")
