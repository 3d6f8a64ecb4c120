import functools
import logging
from decimal import Decimal

from django.db import DatabaseError, transaction
from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from inventory.exceptions import (
    BusinessException,
    InsufficientStockException,
    NegativeQuantityException,
    StorageException,
    UnknownSKUException,
    ValidationException,
)
from inventory.models import MovementType, QuantityField, StockMovement, StockUnit
from inventory.utils import normalize_sku

logger = logging.getLogger(__name__)


REGISTER_FIELDS = (
    "name",
    "barcode",
    "asin",
    "fnsku",
    "product_id",
    "condition",
    "prep_type",
    "unit_weight",
    "unit_cost",
    "selling_price",
    "supplier",
    "category",
    "low_stock_threshold",
)


def storage_errors(operation):
    """Re-raise database faults from a ledger operation as StorageException."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except DatabaseError as exc:
                logger.error(f"Storage failure during {operation}: {exc}")
                raise StorageException(f"Storage failure during {operation}: {exc}", operation) from exc

        return wrapper

    return decorator


def aggregate_lines(lines):
    """
    Sum line quantities per SKU.

    Args:
        lines: Iterable of dicts with 'sku' and 'qty' keys (box items qualify)

    Returns:
        Dict of normalized SKU -> total quantity, sorted by SKU
    """
    totals = {}
    for line in lines:
        sku = normalize_sku(line.get("sku"))
        qty = line.get("qty")
        if not sku:
            raise ValidationException("Every line needs a SKU", {"sku": "This field is required."})
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
            raise ValidationException(
                f"Quantity for SKU {sku} must be a positive integer", {"qty": f"Invalid quantity {qty!r} for {sku}"}
            )
        totals[sku] = totals.get(sku, 0) + qty
    return dict(sorted(totals.items()))


def validate_positive(qty, name="qty"):
    if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
        raise ValidationException(f"{name} must be a positive integer", {name: f"Invalid value {qty!r}"})


def validate_non_negative(qty, name):
    if not isinstance(qty, int) or isinstance(qty, bool) or qty < 0:
        raise ValidationException(f"{name} must be a non-negative integer", {name: f"Invalid value {qty!r}"})


class StockLedger:
    """
    Single source of truth for per-SKU quantities.

    Every quantity change is a conditional UPDATE on the stock_units row, so two
    writers can never drive a quantity below zero, and each change appends a
    StockMovement.
    """

    @storage_errors("lookup")
    def lookup(self, sku, include_inactive=False):
        """
        Fetch the StockUnit for a SKU.

        Raises:
            UnknownSKUException: If the SKU is not registered, or is deactivated
                and include_inactive is False
        """
        normalized = normalize_sku(sku)
        queryset = StockUnit.objects.all()
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        try:
            return queryset.get(sku=normalized)
        except StockUnit.DoesNotExist:
            raise UnknownSKUException(normalized)

    def _apply_delta(self, unit, field, delta, movement_type, reference="", user=None, notes="", restocked=False):
        """
        Apply a delta to one quantity column and record the movement.

        Returns the refreshed unit, or None when a negative delta would take the
        column below zero (no row is touched in that case).
        """
        field = str(field)
        now = timezone.now()
        filters = {"pk": unit.pk}
        if delta < 0:
            filters[f"{field}__gte"] = -delta

        updates = {field: F(field) + delta, "updated_at": now}
        if user is not None:
            updates["updated_by"] = user
        if restocked:
            updates["last_restocked"] = now

        if not StockUnit.objects.filter(**filters).update(**updates):
            return None

        unit.refresh_from_db()
        StockMovement.objects.create(
            stock_unit=unit,
            sku=unit.sku,
            movement_type=movement_type,
            field=field,
            quantity_delta=delta,
            available_after=unit.available_qty,
            faulty_after=unit.faulty_qty,
            reference=reference or "",
            user=user,
            notes=notes or "",
        )
        return unit

    @storage_errors("reserve")
    @transaction.atomic
    def reserve(self, sku, qty, reference="", user=None, notes=""):
        """
        Decrement available quantity.

        Args:
            sku: SKU to reserve
            qty: Positive quantity
            reference: Shipment number or other reference stored on the movement
            user: User performing the reservation

        Returns:
            Updated StockUnit

        Raises:
            UnknownSKUException: If SKU is unknown or inactive
            InsufficientStockException: If available quantity < qty
        """
        validate_positive(qty)
        unit = self.lookup(sku)

        updated = self._apply_delta(
            unit, QuantityField.AVAILABLE, -qty, MovementType.RESERVE, reference=reference, user=user, notes=notes
        )
        if updated is None:
            unit.refresh_from_db(fields=["available_qty"])
            logger.warning(f"Reserve of {qty} x {unit.sku} rejected: only {unit.available_qty} available")
            raise InsufficientStockException(unit.sku, qty, unit.available_qty)

        logger.info(f"Reserved {qty} x {unit.sku} ({reference or 'no reference'}), {updated.available_qty} left")
        return updated

    @storage_errors("release")
    @transaction.atomic
    def release(self, sku, qty, reference="", user=None, notes=""):
        """Increment available quantity. Works on deactivated units so reservations can always be returned."""
        validate_positive(qty)
        unit = self.lookup(sku, include_inactive=True)
        updated = self._apply_delta(
            unit, QuantityField.AVAILABLE, qty, MovementType.RELEASE, reference=reference, user=user, notes=notes
        )
        logger.info(f"Released {qty} x {unit.sku} ({reference or 'no reference'}), {updated.available_qty} available")
        return updated

    @storage_errors("adjust")
    @transaction.atomic
    def adjust(self, sku, delta, faulty=False, user=None, notes=""):
        """
        Manual correction of the available (default) or faulty quantity.

        Raises:
            ValidationException: If delta is not a non-zero integer
            NegativeQuantityException: If the result would be below zero
        """
        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            raise ValidationException("Adjustment must be a non-zero integer", {"delta": f"Invalid value {delta!r}"})

        unit = self.lookup(sku)
        field = str(QuantityField.FAULTY if faulty else QuantityField.AVAILABLE)
        restocked = not faulty and delta > 0

        updated = self._apply_delta(
            unit, field, delta, MovementType.ADJUSTMENT, user=user, notes=notes, restocked=restocked
        )
        if updated is None:
            unit.refresh_from_db(fields=[field])
            current = getattr(unit, field)
            logger.warning(f"Adjustment of {delta} on {field} for {unit.sku} rejected (current {current})")
            raise NegativeQuantityException(unit.sku, field, current, delta)

        logger.info(f"Adjusted {field} of {unit.sku} by {delta}")
        return updated

    @storage_errors("check_availability")
    @transaction.atomic
    def check_availability(self, requirements):
        """
        Verify every requirement can be met, without mutating anything.

        Rows are locked in SKU order so concurrent multi-line reservations
        cannot deadlock each other.

        Args:
            requirements: Dict of SKU -> quantity

        Returns:
            Dict of SKU -> locked StockUnit

        Raises:
            UnknownSKUException: On the first unknown or inactive SKU
            InsufficientStockException: On the first SKU that cannot be covered
        """
        normalized = {}
        for sku, qty in requirements.items():
            key = normalize_sku(sku)
            normalized[key] = normalized.get(key, 0) + qty
        skus = sorted(normalized)

        units = {
            unit.sku: unit
            for unit in StockUnit.objects.select_for_update().filter(sku__in=skus, is_active=True).order_by("sku")
        }
        for sku in skus:
            unit = units.get(sku)
            if unit is None:
                raise UnknownSKUException(sku)
            if unit.available_qty < normalized[sku]:
                raise InsufficientStockException(sku, normalized[sku], unit.available_qty)
        return units

    @storage_errors("reserve_lines")
    def reserve_lines(self, lines, reference="", user=None):
        """
        Reserve a set of lines all or nothing.

        Lines are aggregated per SKU, checked in one pass, then applied. If an
        apply step still fails the lines already applied are released before
        the error propagates.

        Returns:
            Dict of SKU -> reserved quantity
        """
        requirements = aggregate_lines(lines)
        if not requirements:
            return {}

        with transaction.atomic():
            self.check_availability(requirements)

            applied = []
            try:
                for sku, qty in requirements.items():
                    self.reserve(sku, qty, reference=reference, user=user)
                    applied.append((sku, qty))
            except BusinessException as exc:
                logger.warning(f"Reservation for {reference or 'no reference'} failed on {exc.code}, compensating {len(applied)} line(s)")
                for sku, qty in reversed(applied):
                    self.release(sku, qty, reference=reference, user=user, notes="Compensating release")
                raise

        return requirements

    @storage_errors("release_lines")
    def release_lines(self, lines, reference="", user=None):
        """Release a set of lines atomically. Returns dict of SKU -> released quantity."""
        requirements = aggregate_lines(lines)
        with transaction.atomic():
            for sku, qty in requirements.items():
                self.release(sku, qty, reference=reference, user=user)
        return requirements

    @storage_errors("register")
    @transaction.atomic
    def register(self, data, user=None):
        """
        Register a new SKU.

        Args:
            data: Dict with 'sku', 'name' and optional catalog fields;
                'available_qty' / 'faulty_qty' seed the opening balance

        Returns:
            Created StockUnit

        Raises:
            ValidationException: If sku or name is missing or a quantity is invalid
            BusinessException: If the SKU is already registered (DUPLICATE_SKU)
        """
        sku = normalize_sku(data.get("sku"))
        if not sku or not data.get("name"):
            raise ValidationException("SKU and name are required", {"sku": sku, "name": data.get("name")})

        available_qty = data.get("available_qty", 0)
        faulty_qty = data.get("faulty_qty", 0)
        validate_non_negative(available_qty, "available_qty")
        validate_non_negative(faulty_qty, "faulty_qty")

        if StockUnit.objects.filter(sku=sku).exists():
            raise BusinessException(f"SKU {sku} is already registered", "DUPLICATE_SKU", {"sku": sku})

        fields = {name: data[name] for name in REGISTER_FIELDS if data.get(name) is not None}
        unit = StockUnit.objects.create(
            sku=sku,
            available_qty=available_qty,
            faulty_qty=faulty_qty,
            last_restocked=timezone.now() if available_qty else None,
            created_by=user,
            updated_by=user,
            **fields,
        )

        for field, opening in ((QuantityField.AVAILABLE, available_qty), (QuantityField.FAULTY, faulty_qty)):
            if not opening:
                continue
            StockMovement.objects.create(
                stock_unit=unit,
                sku=unit.sku,
                movement_type=MovementType.REGISTER,
                field=field,
                quantity_delta=opening,
                available_after=unit.available_qty,
                faulty_after=unit.faulty_qty,
                user=user,
                notes="Opening balance",
            )

        logger.info(f"Registered SKU {unit.sku} with {available_qty} available")
        return unit

    @storage_errors("restock")
    @transaction.atomic
    def restock(self, sku, qty, user=None, notes=""):
        """Add received stock to the available quantity and stamp last_restocked."""
        validate_positive(qty)
        unit = self.lookup(sku)
        updated = self._apply_delta(
            unit, QuantityField.AVAILABLE, qty, MovementType.RESTOCK, user=user, notes=notes, restocked=True
        )
        logger.info(f"Restocked {qty} x {unit.sku}, {updated.available_qty} available")
        return updated

    @storage_errors("set_stock")
    @transaction.atomic
    def set_stock(self, sku, available_qty, faulty_qty=None, user=None, notes=""):
        """
        Overwrite quantities with absolute values, e.g. after a physical count.

        The difference to the current value is recorded as a movement so the
        ledger history stays complete.
        """
        validate_non_negative(available_qty, "available_qty")
        if faulty_qty is not None:
            validate_non_negative(faulty_qty, "faulty_qty")

        unit = self.lookup(sku)
        unit = StockUnit.objects.select_for_update().get(pk=unit.pk)

        targets = [(QuantityField.AVAILABLE, available_qty)]
        if faulty_qty is not None:
            targets.append((QuantityField.FAULTY, faulty_qty))

        for field, target in targets:
            delta = target - getattr(unit, str(field))
            if delta:
                unit = self._apply_delta(unit, field, delta, MovementType.SET, user=user, notes=notes)

        StockUnit.objects.filter(pk=unit.pk).update(last_restocked=timezone.now())
        unit.refresh_from_db()
        logger.info(f"Set stock of {unit.sku} to {unit.available_qty} available / {unit.faulty_qty} faulty")
        return unit

    @storage_errors("report_defect")
    @transaction.atomic
    def report_defect(self, sku, qty, user=None, notes=""):
        """Record defective units found for a SKU by increasing its faulty quantity."""
        validate_positive(qty)
        unit = self.lookup(sku)
        updated = self._apply_delta(unit, QuantityField.FAULTY, qty, MovementType.DEFECT, user=user, notes=notes)
        logger.info(f"Reported {qty} defective x {unit.sku}")
        return updated

    @storage_errors("clear_defect")
    @transaction.atomic
    def clear_defect(self, sku, qty, user=None, notes=""):
        """Undo a defect report. The faulty quantity floors at zero."""
        validate_positive(qty)
        unit = self.lookup(sku, include_inactive=True)
        unit = StockUnit.objects.select_for_update().get(pk=unit.pk)
        delta = -min(qty, unit.faulty_qty)
        if delta:
            unit = self._apply_delta(unit, QuantityField.FAULTY, delta, MovementType.DEFECT, user=user, notes=notes)
        logger.info(f"Cleared {-delta} defective x {unit.sku}")
        return unit

    @storage_errors("deactivate")
    @transaction.atomic
    def deactivate(self, sku, user=None):
        """Deactivate a SKU. Its history is kept; the workflow treats it as unknown."""
        unit = self.lookup(sku)
        unit.is_active = False
        unit.updated_by = user
        unit.save(update_fields=["is_active", "updated_by", "updated_at"])
        logger.info(f"Deactivated SKU {unit.sku}")
        return unit

    def low_stock(self):
        """Active units whose available quantity is at or below their threshold."""
        return StockUnit.objects.filter(is_active=True, available_qty__lte=F("low_stock_threshold")).order_by(
            "available_qty", "sku"
        )

    @storage_errors("update_catalog")
    @transaction.atomic
    def update_catalog(self, sku, data, user=None):
        """
        Edit catalog fields of a SKU (name, identifiers, weight, prices, threshold).

        Quantities are not catalog data and are rejected here; they only change
        through the ledger operations.

        Raises:
            UnknownSKUException: If the SKU is unknown or inactive
            ValidationException: On an unknown, quantity or empty-name field
        """
        unknown = sorted(set(data) - set(REGISTER_FIELDS))
        if unknown:
            raise ValidationException(
                f"Fields cannot be updated: {', '.join(unknown)}", {field: "Not editable." for field in unknown}
            )
        if "name" in data and not data["name"]:
            raise ValidationException("Name cannot be empty", {"name": "This field may not be blank."})

        unit = self.lookup(sku)
        changed = [name for name, value in data.items() if getattr(unit, name) != value]
        for name in changed:
            setattr(unit, name, data[name])
        unit.updated_by = user
        unit.save(update_fields=changed + ["updated_by", "updated_at"])

        logger.info(f"Catalog of {unit.sku} updated: {', '.join(changed) or 'no changes'}")
        return unit

    @storage_errors("get_statistics")
    def get_statistics(self):
        """Unit count, quantity totals, stock value (available x unit cost) and low stock count of active SKUs."""
        money = DecimalField(max_digits=20, decimal_places=2)
        stock_value = ExpressionWrapper(F("available_qty") * F("unit_cost"), output_field=money)
        return StockUnit.objects.filter(is_active=True).aggregate(
            total_products=Count("id"),
            total_available_qty=Coalesce(Sum("available_qty"), 0),
            total_faulty_qty=Coalesce(Sum("faulty_qty"), 0),
            total_value=Coalesce(Sum(stock_value), Decimal("0.00"), output_field=money),
            low_stock_count=Count("id", filter=Q(available_qty__lte=F("low_stock_threshold"))),
        )
