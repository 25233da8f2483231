"""
Utility functions for the n2kserver library
"""
import asyncio
import sys
from typing import Callable, Any


def run_with_keyboard_interrupt(main_func: Callable[[], Any]) -> None:
    """
    Run an async main function with graceful KeyboardInterrupt handling.

    This function wraps asyncio.run() to catch KeyboardInterrupt (Ctrl+C) and
    provide a clean shutdown experience.

    Args:
        main_func: The async main function to run
    """
    try:
        asyncio.run(main_func())
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user (Ctrl+C)")
        print("Shutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


def hex_bytes(data: bytes, separator: str = ",") -> str:
    """Lowercase two digit hex for each byte, joined by separator"""
    return separator.join(f"{b:02x}" for b in data)


def nmea_checksum(sentence: str) -> str:
    """XOR of every character between the leading $ or ! and the *"""
    acc = 0
    for ch in sentence.lstrip("$!"):
        acc ^= ord(ch)
    return f"{acc & 0xFF:02X}"
