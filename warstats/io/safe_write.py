#!/usr/bin/env python3
"""
Safe Write Operations with Atomic Writes and Checksums

Writes go to a temporary file next to the destination first, get a checksum,
and are then atomically renamed into place, so a reader (or a crash) never
sees a half-written ledger or export.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


def compute_file_checksum(file_path: Path, algorithm: str = 'md5') -> str:
    """
    Compute checksum for a file.

    Args:
        file_path: Path to the file
        algorithm: Hash algorithm ('md5', 'sha1', 'sha256')

    Returns:
        Hexadecimal checksum string
    """
    hash_obj = hashlib.new(algorithm)

    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hash_obj.update(chunk)

    return hash_obj.hexdigest()


def _finalize(temp_path: Path, path: Path, fmt: str) -> Dict[str, Any]:
    checksum = compute_file_checksum(temp_path)
    size_bytes = temp_path.stat().st_size
    temp_path.replace(path)
    logger.debug(f"Wrote {fmt.upper()}: {path} ({size_bytes:,} bytes, MD5: {checksum})")
    return {
        "path": path,
        "checksum": checksum,
        "size_bytes": size_bytes,
        "format": fmt,
    }


def safe_write_json(data: Union[dict, list], path: Union[str, Path],
                    log: Optional[logging.Logger] = None) -> Dict[str, Any]:
    """
    Safely write JSON data with atomic operation and checksum.

    Args:
        data: Dictionary or list to write as JSON
        path: Destination file path
        log: Optional logger instance

    Returns:
        Dictionary with path, checksum, and size information

    Raises:
        OSError, TypeError: If the write fails (temporary file is removed)
    """
    log = log or logger
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + '.tmp')

    try:
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return _finalize(temp_path, path, "json")
    except (OSError, TypeError, ValueError) as e:
        if temp_path.exists():
            temp_path.unlink()
        log.error(f"Failed to write JSON to {path}: {e}")
        raise


def safe_write_csv(df: pd.DataFrame, path: Union[str, Path],
                   log: Optional[logging.Logger] = None) -> Dict[str, Any]:
    """
    Safely write DataFrame to CSV with atomic operation and checksum.

    Args:
        df: pandas DataFrame to write
        path: Destination file path
        log: Optional logger instance

    Returns:
        Dictionary with path, checksum, and size information
    """
    log = log or logger
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + '.tmp')

    try:
        df.to_csv(temp_path, index=False)
        result = _finalize(temp_path, path, "csv")
        log.info(f"Successfully wrote CSV: {path} ({result['size_bytes']:,} bytes)")
        return result
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        log.error(f"Failed to write CSV to {path}: {e}")
        raise


def verify_file_integrity(file_path: Path, expected_checksum: str,
                          algorithm: str = 'md5') -> bool:
    """
    Verify file integrity by comparing checksums.

    Returns:
        True if checksums match, False otherwise
    """
    if not file_path.exists():
        return False

    return compute_file_checksum(file_path, algorithm) == expected_checksum
