"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "APIError": 1,
    "DigestParseError": 2,
    "LayerSizeConflict": 2,
    "ValueError": 2,
    "TransportError": 3,
    "ErrorBodyDecodeError": 3,
    "DecodeError": 4,
    "DigestMismatch": 5,
    "DownloadIncomplete": 6,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    - 0: Success
    - 1: Registry rejected the request (APIError)
    - 2: Invalid input (DigestParseError, LayerSizeConflict, ValueError)
    - 3: Network failure (TransportError) or unknown error
    - 4: Registry sent an undecodable document (DecodeError)
    - 5: Content digest mismatch (DigestMismatch)
    - 6: Some layers did not download (DownloadIncomplete)

    Args:
        exc: Exception to map

    Returns:
        Exit code (1-6, with 3 as fallback for unknown exceptions)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit, after printing the error.

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except Exception as e:
        from .printers import print_error
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
