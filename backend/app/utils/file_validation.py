ALLOWED_FILE_TYPES = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}


def is_valid_file_type(mime_type: str | None) -> bool:
    return mime_type in ALLOWED_FILE_TYPES
