"""Order number checksum validation."""


def is_valid_order_number(number: str) -> bool:
    """Return True when ``number`` is a non-empty digit string passing the Luhn check."""

    if not number or not number.isascii() or not number.isdigit():
        return False

    total = 0
    for index, char in enumerate(reversed(number)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0
