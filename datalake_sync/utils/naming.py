import re


def kebab_case(value: str) -> str:
    """
    Convert a string to kebab case.

    Non-alphanumeric runs become a single hyphen, leading/trailing hyphens are
    stripped: "Hello World 123" -> "hello-world-123".
    """
    return re.sub(r"[^a-zA-Z0-9]+", "-", value).strip("-").lower()


def table_name(entity: str) -> str:
    """Default table name for an entity: "order-item" -> "order_item"."""
    return kebab_case(entity).replace("-", "_")
