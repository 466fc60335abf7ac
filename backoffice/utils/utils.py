from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def employee_code(sequence: int) -> str:
    return f"EMP{sequence:04d}"


def paginate(page: int, limit: int) -> tuple[int, int]:
    page = max(page, 1)
    limit = max(min(limit, 200), 1)
    return (page - 1) * limit, limit


def page_count(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit else 0
