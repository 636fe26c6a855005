"""
Offer document parsing.

Turns the text of one offer PDF into the structured payload the pipeline
ships over the bus. The parser is tied to a single known template:
header fields sit on fixed lines, order lines start with "B<digits>",
and the total and validity date are found by label.

Template (0-based line numbers):
    0   title
    1   company name
    2   street and house number
    3   post code and city
    4   "Telefon: ..."
    5   "E-Mail: ..."
    11  "Angebotsnummer: <number>"
    12  "Datum: <dd.mm.yyyy>"
    ..  "B001 <description> <amount> <price>"
    ..  "Gesamtpreis: <total> EUR"
    ..  "... gültig bis zum <dd.mm.yyyy>."
"""
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List

import pdfplumber

from .errors import OfferParseError, PdfReadError

logger = logging.getLogger(__name__)

COMPANY_LINE = 1
STREET_LINE = 2
CITY_LINE = 3
PHONE_LINE = 4
MAIL_LINE = 5
OFFER_NUMBER_LINE = 11
OFFER_DATE_LINE = 12

TOTAL_LABEL = "Gesamtpreis:"
ITEM_PATTERN = re.compile(r"^B(\d+)\b.*")
VALID_TILL_PATTERN = re.compile(r"(?:gültig bis zum|valid until)\s+(\d{2}\.\d{2}\.\d{4})", re.IGNORECASE)


def extract_pdf_text(path: Path | str) -> str:
    """Extract the text of every page, top to bottom."""
    p = Path(path)
    try:
        text_parts = []
        with pdfplumber.open(p) as pdf:
            for page in pdf.pages:
                text = page.extract_text()
                if text:
                    text_parts.append(text)
    except Exception as e:
        raise PdfReadError(f"Could not read PDF {p.name}: {e}") from e
    return "\n".join(text_parts)


def _line(lines: List[str], index: int, field: str) -> str:
    if index >= len(lines) or not lines[index]:
        raise OfferParseError(f"Missing {field} (expected on line {index + 1})")
    return lines[index]


def _after_separator(line: str, sep: str, field: str) -> str:
    if sep not in line:
        raise OfferParseError(f"Cannot read {field} from '{line}'")
    return line.split(sep, 1)[1].strip()


def _token(line: str, index: int, field: str) -> str:
    parts = line.split()
    if index >= len(parts):
        raise OfferParseError(f"Cannot read {field} from '{line}'")
    return parts[index]


def _decimal(value: str, field: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise OfferParseError(f"Invalid {field}: '{value}'") from None


def parse_total_price(lines: List[str]) -> Decimal:
    for line in lines:
        if TOTAL_LABEL in line:
            value = _after_separator(line, ":", "total price")
            return _decimal(_token(value, 0, "total price"), "total price")
    raise OfferParseError(f"No '{TOTAL_LABEL}' line found")


def parse_valid_till(text: str) -> str:
    match = VALID_TILL_PATTERN.search(text)
    return match.group(1) if match else ""


def parse_items(lines: List[str]) -> List[Dict[str, Any]]:
    """Parse order lines ("B001 Tunnelbohrung 50m Tiefe 1 4000.00")."""
    items = []
    for line in lines:
        match = ITEM_PATTERN.match(line)
        if not match:
            continue
        parts = line.split()
        if len(parts) < 3:
            raise OfferParseError(f"Incomplete order line: '{line}'")
        try:
            amount = int(parts[-2])
        except ValueError:
            raise OfferParseError(f"Invalid amount in order line: '{line}'") from None
        items.append({
            "posNumber": int(match.group(1)),
            "description": " ".join(parts[1:-2]),
            "amount": amount,
            "price": str(_decimal(parts[-1], "price")),
        })
    return items


def parse_offer_text(text: str) -> Dict[str, Any]:
    """
    Parse offer text into the structured payload.

    Raises:
        OfferParseError: if a required line or value is missing or malformed
    """
    lines = [line.strip() for line in text.splitlines()]

    street_line = _line(lines, STREET_LINE, "street")
    street_parts = street_line.rsplit(" ", 1)
    if len(street_parts) != 2:
        raise OfferParseError(f"Cannot read street and house number from '{street_line}'")

    city_line = _line(lines, CITY_LINE, "post code and city")
    city_parts = city_line.split(" ", 1)
    if len(city_parts) != 2:
        raise OfferParseError(f"Cannot read post code and city from '{city_line}'")

    return {
        "companyName": _line(lines, COMPANY_LINE, "company name"),
        "addressStreet": street_parts[0].strip(),
        "addressHouseNumber": street_parts[1].strip(),
        "postCode": city_parts[0].strip(),
        "city": city_parts[1].strip(),
        "phone": _after_separator(_line(lines, PHONE_LINE, "phone"), ":", "phone"),
        "mail": _after_separator(_line(lines, MAIL_LINE, "mail"), ":", "mail"),
        "offerNumber": _token(_line(lines, OFFER_NUMBER_LINE, "offer number"), 1, "offer number"),
        "offerDate": _token(_line(lines, OFFER_DATE_LINE, "offer date"), 1, "offer date"),
        "totalPrice": str(parse_total_price(lines)),
        "validTillDate": parse_valid_till(text),
        "invoiceItems": parse_items(lines),
    }


def convert_to_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def build_envelope(content: str, path: Path | str) -> str:
    """Wrap the parsed offer JSON together with its source path."""
    return json.dumps({"content": content, "path": str(path)}, ensure_ascii=False)


def pdf_to_json(path: Path | str) -> str:
    """Extract and parse one offer PDF into its JSON payload."""
    text = extract_pdf_text(path)
    logger.debug(f"Extracted {len(text)} characters from {Path(path).name}")
    return convert_to_json(parse_offer_text(text))
