"""
Utilities for handling uploaded course files.
"""
import os
from typing import List, Tuple
from fastapi import UploadFile
from core.config import settings
from core.exceptions import BadRequestException


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_file_type(filename: str) -> bool:
    """
    Validate if the file type is allowed.

    Args:
        filename: Name of the file

    Returns:
        bool: True if file type is allowed, False otherwise
    """
    return file_extension(filename) in settings.allowed_file_types


def validate_file_size(file_size: int) -> bool:
    """
    Validate if the file size is within allowed limits.

    Args:
        file_size: Size of the file in bytes

    Returns:
        bool: True if file size is allowed, False otherwise
    """
    return file_size <= settings.max_file_size_mb * 1024 * 1024


async def read_upload(upload_file: UploadFile, strict_type: bool = False) -> Tuple[str, str, bytes]:
    """
    Read an upload into memory after checking its size.

    Returns:
        Tuple containing (filename, content_type, content)
    """
    filename = upload_file.filename or "upload"
    if strict_type and not validate_file_type(filename):
        raise BadRequestException(
            f"Unsupported file type for {filename}. Allowed: {', '.join(settings.allowed_file_types)}"
        )

    content = await upload_file.read()
    if not validate_file_size(len(content)):
        raise BadRequestException(f"{filename} exceeds the {settings.max_file_size_mb}MB limit")
    return filename, upload_file.content_type or "", content


async def read_uploads(files: List[UploadFile], strict_type: bool = False) -> List[Tuple[str, str, bytes]]:
    return [await read_upload(f, strict_type=strict_type) for f in files]
