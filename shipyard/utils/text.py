import re
import unicodedata


def slugify(value: str, separator: str = '-') -> str:
    """
    Lowercase ASCII slug where every run of other characters becomes one separator.

    slugify('Acme Corp') -> 'acme-corp'
    slugify('10.0.0.5') -> '10-0-0-5'
    """
    value = unicodedata.normalize('NFKD', str(value)).encode('ascii', 'ignore').decode('ascii')
    value = re.sub(r'[^a-z0-9]+', separator, value.lower())
    return value.strip(separator)


def append_output(output, message):
    """Append a message to accumulated run output, one message per line."""
    if output:
        return f"{output}\n{message}"
    return message
