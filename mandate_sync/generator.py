"""
Synthetic mandate file generation and random modification.

Produces realistic UK direct debit extracts for load and end-to-end testing,
and derives "next night" files in which a given percentage of records has
been edited and re-stamped.
"""

import random
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Callable, Optional

from mandate_sync.batch.readers.record_parser import (
    DATE_FORMAT,
    DATE_TIME_FORMAT,
    FIELD_LAYOUT,
)
from mandate_sync.observability.logger import get_logger

logger = get_logger(__name__)

FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

CREDITOR_NAMES = [
    "British Gas Services Ltd", "Thames Water Utilities", "EDF Energy Customers Plc",
    "Sky UK Limited", "Virgin Media Payments", "O2 UK Limited", "Vodafone UK",
    "BT Payment Services Ltd", "Netflix International", "Spotify AB",
    "Sainsbury's Bank", "Tesco Personal Finance", "Aviva Insurance Ltd",
    "Direct Line Insurance", "AA Membership Services", "PureGym Limited",
    "National Trust Membership", "British Heart Foundation", "Cancer Research UK",
    "Oxfam GB", "London Borough Council", "Manchester City Council",
    "Octopus Energy Ltd", "Ovo Energy Limited", "Severn Trent Water",
    "Yorkshire Water Services", "Audible UK", "Adobe Systems UK",
]

FIRST_NAMES = [
    "Oliver", "George", "Arthur", "Noah", "Muhammad", "Leo", "Harry", "Olivia",
    "Amelia", "Isla", "Ava", "Mia", "Grace", "James", "William", "Thomas",
    "Emily", "Poppy", "Ella", "Freya", "Jack", "Alfie", "Sophie", "Evie",
    "Daniel", "Chloe", "Ruby", "David", "Sarah", "Emma", "Hannah", "Laura",
]

LAST_NAMES = [
    "Smith", "Jones", "Williams", "Taylor", "Brown", "Davies", "Evans", "Wilson",
    "Thomas", "Johnson", "Roberts", "Walker", "White", "Hughes", "Green", "Hall",
    "Patel", "Khan", "Ahmed", "Singh", "Murphy", "O'Brien", "Kelly", "Byrne",
]

MANDATE_TYPES = ["RECURRING", "ONE_OFF"]
FREQUENCIES = ["WEEKLY", "FORTNIGHTLY", "MONTHLY", "QUARTERLY", "ANNUALLY"]
# Weighted towards ACTIVE, BACS and GBP
STATUSES = ["ACTIVE", "ACTIVE", "ACTIVE", "ACTIVE", "SUSPENDED", "PENDING"]
SCHEME_TYPES = ["BACS", "BACS", "BACS", "SEPA_CORE", "SEPA_B2B"]
CURRENCIES = ["GBP", "GBP", "GBP", "GBP", "EUR"]
EDIT_STATUSES = ["ACTIVE", "SUSPENDED", "PENDING", "CANCELLED"]

EMAIL_DOMAINS = [
    "gmail.com", "yahoo.co.uk", "hotmail.com", "outlook.com", "icloud.com",
    "btinternet.com", "sky.com", "virginmedia.com",
]

DESCRIPTIONS = [
    "Monthly subscription", "Utility bill payment", "Insurance premium",
    "Membership fee", "Loan repayment", "Mortgage payment", "Rent payment",
    "Charity donation", "Council tax", "Water rates", "Energy bill",
    "Phone contract", "Broadband service", "Gym membership",
]

SORT_CODE_PREFIXES = [
    "01", "04", "05", "07", "08", "09", "10", "11", "20", "23", "30", "40",
    "51", "52", "60", "70", "77", "80", "83", "87", "89", "90", "93",
]

BIC_BANK_CODES = ["NWBK", "BARC", "HSBC", "LOYD", "MIDL", "NATW", "RBOS", "SANT"]
BIC_LOCATION_CODES = ["2L", "22", "21", "2S", "MM"]
PHONE_PREFIXES = ["7700", "7701", "7702", "7800", "7801", "7900", "7901"]

FIELD_INDEX = {name: i for i, (name, _) in enumerate(FIELD_LAYOUT)}

_COUNT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)([KM]?)$")


def parse_record_count(text: str) -> int:
    """
    Parse a record count such as "500", "10k" or "1.5M".

    Raises:
        ValueError: If the text is not a positive count
    """
    match = _COUNT_PATTERN.match(text.strip().upper())
    if not match:
        raise ValueError(f"Invalid record count {text!r}; use formats like 1000, 500k, 1.5M")
    number, suffix = match.groups()
    multiplier = {"": 1, "K": 1_000, "M": 1_000_000}[suffix]
    count = int(Decimal(number) * multiplier)
    if count < 1:
        raise ValueError(f"Record count must be positive, got {text!r}")
    return count


def format_record_count(count: int) -> str:
    """Short form used in file names: 500, 10.0K, 1.5M."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def header_line(delimiter: str = "|") -> str:
    """Header row in camelCase, as produced by the source system."""
    def camel(name: str) -> str:
        first, *rest = name.split("_")
        return first + "".join(part.capitalize() for part in rest)

    return delimiter.join(camel(name) for name, _ in FIELD_LAYOUT)


class MandateDataGenerator:
    """
    Generates synthetic mandate files.

    Mandate ids are sequential (MND-0000000001, ...), so two files generated
    with the same count describe the same mandates.
    """

    def __init__(self, seed: Optional[int] = None, delimiter: str = "|"):
        self.random = random.Random(seed)
        self.delimiter = delimiter

    def _choice(self, values: list[str]) -> str:
        return self.random.choice(values)

    def _digits(self, length: int) -> str:
        return "".join(str(self.random.randrange(10)) for _ in range(length))

    def _sort_code(self) -> str:
        return (
            f"{self._choice(SORT_CODE_PREFIXES)}-"
            f"{self.random.randrange(100):02d}-{self.random.randrange(100):02d}"
        )

    def _iban(self, sort_code: str, account_number: str) -> str:
        check_digits = self.random.randint(10, 99)
        return f"GB{check_digits}NWBK{sort_code.replace('-', '')}{account_number}"

    def _bic(self) -> str:
        country = self._choice(["GB", "GB", "GB", "GB", "IE"])
        return self._choice(BIC_BANK_CODES) + country + self._choice(BIC_LOCATION_CODES)

    def _email(self, first: str, last: str) -> str:
        first, last = first.lower(), last.lower().replace("'", "")
        domain = self._choice(EMAIL_DOMAINS)
        number = self.random.randint(1, 99)
        return self._choice([
            f"{first}.{last}@{domain}",
            f"{first}{last}@{domain}",
            f"{first}_{last}@{domain}",
            f"{first}.{last}{number}@{domain}",
            f"{first}{number}@{domain}",
        ])

    def phone(self) -> str:
        return f"+44{self._choice(PHONE_PREFIXES)}{self._digits(6)}"

    def amount(self, low: int, high: int) -> Decimal:
        value = Decimal(str(low + (high - low) * self.random.random()))
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def _datetime(self, start_year: int, end_year: int) -> datetime:
        start = datetime(start_year, 1, 1)
        span = int((datetime(end_year, 12, 31, 23, 59) - start).total_seconds())
        return start + timedelta(seconds=self.random.randrange(span))

    def _date(self, start_year: int, end_year: int) -> date:
        start = date(start_year, 1, 1)
        span = (date(end_year, 12, 31) - start).days
        return start + timedelta(days=self.random.randrange(span))

    def generate_line(self, index: int) -> str:
        """
        Build one record line.

        Args:
            index: 1-based sequence number, used for the mandate id

        Returns:
            Delimited record line without a line terminator
        """
        creditor_name = self._choice(CREDITOR_NAMES)
        creditor_account = self._digits(8)
        creditor_sort_code = self._sort_code()
        first, last = self._choice(FIRST_NAMES), self._choice(LAST_NAMES)
        debtor_account = self._digits(8)
        debtor_sort_code = self._sort_code()

        mandate_type = self._choice(MANDATE_TYPES)
        frequency = "ONE_OFF" if mandate_type == "ONE_OFF" else self._choice(FREQUENCIES)
        signature_date = self._date(2020, 2026)
        effective_date = signature_date + timedelta(days=self.random.randint(1, 30))
        expiry_date = effective_date + timedelta(days=365 * self.random.randint(1, 5))
        max_per_transaction = self.amount(10, 5000)
        currency = self._choice(CURRENCIES)
        reference_prefix = re.sub(r"[^A-Z]", "", creditor_name[:4].upper())

        values = {
            "mandate_id": f"MND-{index:010d}",
            "last_update_date": self._datetime(2023, 2026).strftime(DATE_TIME_FORMAT),
            "creditor_id": f"CRED{self.random.randint(1, 1000):06d}",
            "creditor_name": creditor_name,
            "creditor_account_number": creditor_account,
            "creditor_sort_code": creditor_sort_code,
            "creditor_iban": self._iban(creditor_sort_code, creditor_account),
            "creditor_bic": self._bic(),
            "debtor_name": f"{first} {last}",
            "debtor_account_number": debtor_account,
            "debtor_sort_code": debtor_sort_code,
            "debtor_iban": self._iban(debtor_sort_code, debtor_account),
            "debtor_bic": self._bic(),
            "debtor_email": self._email(first, last),
            "debtor_phone": self.phone(),
            "mandate_reference": f"REF-{reference_prefix}-{self.random.randrange(999999):06d}",
            "mandate_type": mandate_type,
            "frequency": frequency,
            "status": self._choice(STATUSES),
            "signature_date": signature_date.strftime(DATE_FORMAT),
            "effective_date": effective_date.strftime(DATE_FORMAT),
            "expiry_date": expiry_date.strftime(DATE_FORMAT),
            "max_amount_per_transaction": str(max_per_transaction),
            "max_amount_per_month": str(max_per_transaction * self.random.randint(1, 5)),
            "max_transactions_per_month": str(self.random.randint(1, 10)),
            "currency": currency,
            "description": self._choice(DESCRIPTIONS),
            "scheme_type": "SEPA_CORE" if currency == "EUR" else self._choice(SCHEME_TYPES),
        }
        return self.delimiter.join(values[name] for name, _ in FIELD_LAYOUT)

    def generate_file(
        self,
        count: int,
        output_dir: str | Path = ".",
        now: Optional[datetime] = None,
    ) -> Path:
        """
        Write a file of `count` generated records.

        Args:
            count: Number of records
            output_dir: Directory to create the file in (created if missing)
            now: Timestamp used in the file name (defaults to now)

        Returns:
            Path of the generated file
        """
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")

        now = now or datetime.now()
        output_path = Path(output_dir) / (
            f"mandates_{now.strftime(FILE_TIMESTAMP_FORMAT)}_{format_record_count(count)}.txt"
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        progress_interval = max(1, count // 10)

        with open(output_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(header_line(self.delimiter) + "\n")
            for i in range(1, count + 1):
                f.write(self.generate_line(i) + "\n")
                if i % progress_interval == 0:
                    logger.info(f"Generated {i}/{count} records")

        logger.info(f"Generated {count} records into {output_path}")
        return output_path


@dataclass
class ModificationResult:
    output_path: Path
    total_records: int
    modified_records: int

    @property
    def unchanged_records(self) -> int:
        return self.total_records - self.modified_records


class MandateDataModifier:
    """
    Copies a mandate file, editing a random share of its records.

    An edited record gets a fresh last_update_date and 1 to 4 field edits
    drawn from status, frequency, amount limits, description and debtor
    contact details. An edit may re-pick the current value, in which case
    the record is re-stamped without any attribute change.
    """

    def __init__(
        self,
        edit_percentage: float,
        seed: Optional[int] = None,
        delimiter: str = "|",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize modifier.

        Args:
            edit_percentage: Share of records to edit, 0 to 100
            seed: Random seed for reproducible output
            delimiter: Single-character field separator
            clock: Source of the new last_update_date (defaults to datetime.now)
        """
        if not 0 <= edit_percentage <= 100:
            raise ValueError(f"edit percentage must be between 0 and 100, got {edit_percentage}")
        self.edit_percentage = edit_percentage
        self.delimiter = delimiter
        self.clock = clock or datetime.now
        self.generator = MandateDataGenerator(seed=seed, delimiter=delimiter)
        self.random = self.generator.random

    def should_modify(self) -> bool:
        return self.random.random() * 100 < self.edit_percentage

    def _modify_email(self, current: str) -> str:
        if not current or current.count("@") != 1:
            return "updated.user@email.com"
        local, domain = current.split("@")
        return f"{re.sub(r'[0-9]+$', '', local)}{self.random.randint(1, 999)}@{domain}"

    def modify_line(self, line: str) -> str:
        """Re-stamp a record line and edit 1 to 4 of its fields."""
        fields = line.split(self.delimiter)
        if len(fields) != len(FIELD_LAYOUT):
            # Not a well-formed record; copy through for the reader to report
            return line

        fields[FIELD_INDEX["last_update_date"]] = self.clock().strftime(DATE_TIME_FORMAT)

        edits = {
            "status": lambda _: self.random.choice(EDIT_STATUSES),
            "frequency": lambda _: self.random.choice(FREQUENCIES),
            "max_amount_per_transaction": lambda _: str(self.generator.amount(10, 5000)),
            "max_amount_per_month": lambda _: str(self.generator.amount(50, 10000)),
            "max_transactions_per_month": lambda _: str(self.random.randint(1, 20)),
            "description": lambda _: self.random.choice(DESCRIPTIONS),
            "debtor_email": self._modify_email,
            "debtor_phone": lambda _: self.generator.phone(),
        }
        for _ in range(self.random.randint(1, 4)):
            field_name = self.random.choice(list(edits))
            index = FIELD_INDEX[field_name]
            fields[index] = edits[field_name](fields[index])

        return self.delimiter.join(fields)

    def modify_file(self, input_path: str | Path, output_dir: str | Path | None = None) -> ModificationResult:
        """
        Write a modified copy of a mandate file.

        Args:
            input_path: Source file (header plus records)
            output_dir: Directory for the output (defaults to the input's directory)

        Returns:
            ModificationResult with the output path and counts
        """
        input_path = Path(input_path)
        output_dir = Path(output_dir) if output_dir is not None else input_path.parent
        output_dir.mkdir(parents=True, exist_ok=True)

        now = self.clock()
        output_path = output_dir / (
            f"{input_path.stem}_modified_{now.strftime(FILE_TIMESTAMP_FORMAT)}"
            f"_{self.edit_percentage:.0f}pct.txt"
        )

        total = modified = 0
        with open(input_path, encoding="utf-8", newline="") as source, \
                open(output_path, "w", encoding="utf-8", newline="\n") as target:
            header = source.readline()
            if header:
                target.write(header.rstrip("\r\n") + "\n")
            for raw in source:
                line = raw.rstrip("\r\n")
                if not line.strip():
                    target.write("\n")
                    continue
                total += 1
                if self.should_modify():
                    line = self.modify_line(line)
                    modified += 1
                target.write(line + "\n")

        logger.info(
            f"Modified {modified} of {total} records into {output_path}",
            extra={"edit_percentage": self.edit_percentage},
        )
        return ModificationResult(output_path=output_path, total_records=total, modified_records=modified)
