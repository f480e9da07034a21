#!/usr/bin/env python3
"""Download an ONNX content classifier and verify it against its CRC32 hash file."""
from __future__ import annotations

import argparse
import sys
import zlib
from pathlib import Path
from typing import Optional

import requests

ASSET_BASE = "https://github.com/facefusion/facefusion-assets/releases/download/models-3.3.0"

MODEL_URLS = {
    "nsfw_2": f"{ASSET_BASE}/nsfw_2.onnx",
    "nsfw_3": f"{ASSET_BASE}/nsfw_3.onnx",
}


def crc32_hex(content: bytes) -> str:
    return format(zlib.crc32(content), "08x")


def download_file(url: str, target: Path, timeout: int = 120) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with requests.get(url, timeout=timeout, stream=True) as response:
        response.raise_for_status()
        with target.open("wb") as handle:
            for chunk in response.iter_content(chunk_size=8192):
                handle.write(chunk)


def fetch_expected_hash(url: str) -> Optional[str]:
    response = requests.get(url, timeout=30)
    if response.status_code == 404:
        return None
    response.raise_for_status()
    return response.text.strip()


def verify(target: Path, expected: Optional[str]) -> bool:
    if expected is None:
        print(f"No hash published for {target.name}; skipping verification")
        return True
    actual = crc32_hex(target.read_bytes())
    if actual != expected:
        print(f"Hash mismatch for {target}: expected {expected}, got {actual}")
        return False
    return True


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Download ONNX classifier weights")
    parser.add_argument("--variant", choices=MODEL_URLS.keys(), default="nsfw_2", help="Classifier to download")
    parser.add_argument("--url", type=str, default=None, help="Model weights URL override")
    parser.add_argument("--hash-url", type=str, default=None, help="CRC32 hash file URL override")
    parser.add_argument("--output", type=Path, default=None, help="Destination path")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    url = args.url or MODEL_URLS[args.variant]
    hash_url = args.hash_url or url.rsplit(".", 1)[0] + ".hash"
    target = args.output or Path("module_1_content_detection/models") / Path(url).name

    download_file(url, target)
    expected = fetch_expected_hash(hash_url)
    if not verify(target, expected):
        target.unlink()
        return 1
    if expected is not None:
        target.with_suffix(".hash").write_text(expected, encoding="utf-8")
    print(f"Model weights downloaded to {target}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
