_SIZES = ['Bytes', 'KB', 'MB', 'GB', 'TB']


def format_file_size(num_bytes: int) -> str:
    """Human readable size, e.g. ``1536`` -> ``"1.5 KB"``."""
    if not num_bytes or num_bytes <= 0:
        return '0 Bytes'
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(_SIZES) - 1:
        value /= 1024
        i += 1
    value = round(value, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZES[i]}"
