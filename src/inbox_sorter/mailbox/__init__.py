"""Folder naming, enumeration and message relocation."""

from .naming import decode_folder_name, encode_folder_name, same_folder

__all__ = ["decode_folder_name", "encode_folder_name", "same_folder"]
