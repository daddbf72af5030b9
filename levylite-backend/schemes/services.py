# schemes/services.py
import csv
import io
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, List

from django.db import transaction

from common.errors import ValidationError
from subscriptions.services import ensure_lot_capacity
from .models import Scheme, SchemeStatus, Lot, LotStatus, Owner

logger = logging.getLogger(__name__)

LOT_IMPORT_COLUMNS = ("lot_number", "unit_entitlement", "unit_number", "lot_type", "street_address")
LOT_TYPES = {c[0] for c in Lot._meta.get_field("lot_type").choices}


def archive_scheme(scheme: Scheme) -> Scheme:
    scheme.status = SchemeStatus.ARCHIVED
    scheme.save(update_fields=["status", "updated_at"])
    logger.info("Scheme %s archived", scheme.id)
    return scheme


def find_owners_by_email(email: str):
    return Owner.objects.filter(email__iexact=email.strip()).order_by("id")


def create_lot(serializer, organisation) -> Lot:
    scheme = serializer.validated_data["scheme"]
    if scheme.status == SchemeStatus.ARCHIVED:
        raise ValidationError("Cannot add lots to an archived scheme")
    status = serializer.validated_data.get("status", LotStatus.ACTIVE)
    with transaction.atomic():
        if status == LotStatus.ACTIVE:
            ensure_lot_capacity(organisation, adding=1)
        return serializer.save()


def parse_lot_rows(csv_text: str) -> List[dict]:
    reader = csv.DictReader(io.StringIO(csv_text))
    if not reader.fieldnames or not {"lot_number", "unit_entitlement"} <= {f.strip() for f in reader.fieldnames}:
        raise ValidationError("CSV must have lot_number and unit_entitlement columns")
    rows, errors = [], []
    for line, raw in enumerate(reader, start=2):
        row = {k.strip(): (v or "").strip() for k, v in raw.items() if k and k.strip() in LOT_IMPORT_COLUMNS}
        if not row.get("lot_number"):
            errors.append(f"line {line}: lot_number is required")
            continue
        try:
            entitlement = Decimal(row.get("unit_entitlement") or "")
        except InvalidOperation:
            errors.append(f"line {line}: unit_entitlement must be a number")
            continue
        if entitlement < 0:
            errors.append(f"line {line}: unit_entitlement cannot be negative")
            continue
        lot_type = row.get("lot_type") or "residential"
        if lot_type not in LOT_TYPES:
            errors.append(f"line {line}: unknown lot_type '{lot_type}'")
            continue
        rows.append(
            {
                "lot_number": row["lot_number"],
                "unit_entitlement": entitlement,
                "unit_number": row.get("unit_number") or None,
                "street_address": row.get("street_address") or None,
                "lot_type": lot_type,
            }
        )
    if errors:
        raise ValidationError("; ".join(errors[:10]))
    return rows


def import_lots(scheme: Scheme, rows: Iterable[dict]) -> List[Lot]:
    """All-or-nothing insert of parsed lot rows into one scheme."""
    rows = list(rows)
    if not rows:
        raise ValidationError("No lots to import")
    if scheme.status == SchemeStatus.ARCHIVED:
        raise ValidationError("Cannot add lots to an archived scheme")

    numbers = [r["lot_number"] for r in rows]
    dupes = sorted({n for n in numbers if numbers.count(n) > 1})
    if dupes:
        raise ValidationError(f"Duplicate lot numbers in import: {', '.join(dupes)}")
    existing = sorted(Lot.objects.filter(scheme=scheme, lot_number__in=numbers).values_list("lot_number", flat=True))
    if existing:
        raise ValidationError(f"Lot numbers already exist in this scheme: {', '.join(existing)}")

    with transaction.atomic():
        ensure_lot_capacity(scheme.organisation, adding=len(rows))
        lots = Lot.objects.bulk_create([Lot(scheme=scheme, **r) for r in rows])
    logger.info("Imported %s lots into scheme %s", len(lots), scheme.id)
    return lots
