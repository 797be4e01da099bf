"""Pydantic models for payloads entering the domain services."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from clinicdb.balances import to_money
from clinicdb.errors import ConstraintViolation
from clinicdb.models import is_valid_tooth_number
from clinicdb.time_utils import to_iso

ModelT = TypeVar("ModelT", bound=BaseModel)

TreatmentStatus = Literal["planned", "in_progress", "completed", "cancelled"]
LabOrderStatus = Literal["معلق", "مكتمل", "ملغي"]
SessionStatus = Literal["planned", "completed", "cancelled"]
NeedPriority = Literal["low", "medium", "high", "urgent"]
NeedStatus = Literal["pending", "ordered", "received", "cancelled"]
AppointmentStatus = Literal["scheduled", "completed", "cancelled", "no_show"]
ExpenseType = Literal["salary", "utilities", "rent", "maintenance", "supplies", "insurance", "other"]
ExpensePaymentMethod = Literal["cash", "bank_transfer", "check", "credit_card"]
ExpenseStatus = Literal["paid", "pending", "overdue", "cancelled"]
RecurringFrequency = Literal["daily", "weekly", "monthly", "quarterly", "yearly"]
AlertType = Literal[
    "appointment", "payment", "treatment", "follow_up", "prescription", "lab_order", "inventory"
]
AlertPriority = Literal["high", "medium", "low"]


class _Payload(BaseModel):
    """Base for write payloads: unknown fields (including derived ones) are rejected."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _money(value: Optional[Decimal]) -> Optional[Decimal]:
    return None if value is None else to_money(value)


def _tooth(value: Optional[int]) -> Optional[int]:
    if value is not None and not is_valid_tooth_number(value):
        raise ValueError(f"{value} is not a valid FDI tooth number")
    return value


def _timestamp(value: Optional[str]) -> Optional[str]:
    return None if value in (None, "") else to_iso(value)


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------


class PatientCreate(_Payload):
    id: Optional[str] = None
    serial_number: Optional[str] = None
    full_name: str = Field(min_length=1)
    gender: Literal["male", "female"]
    age: int = Field(gt=0)
    patient_number: Optional[int] = Field(default=None, gt=0)
    patient_condition: str = Field(min_length=1)
    allergies: Optional[str] = None
    medical_conditions: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None


class PatientUpdate(_Payload):
    full_name: Optional[str] = Field(default=None, min_length=1)
    gender: Optional[Literal["male", "female"]] = None
    age: Optional[int] = Field(default=None, gt=0)
    patient_number: Optional[int] = Field(default=None, gt=0)
    patient_condition: Optional[str] = None
    allergies: Optional[str] = None
    medical_conditions: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None


# ---------------------------------------------------------------------------
# Tooth treatments and sessions
# ---------------------------------------------------------------------------


class ToothTreatmentCreate(_Payload):
    id: Optional[str] = None
    patient_id: str
    tooth_number: int
    tooth_name: Optional[str] = None
    treatment_type: str = Field(min_length=1)
    treatment_category: Optional[str] = None
    treatment_status: TreatmentStatus = "planned"
    treatment_color: str = "#22c55e"
    start_date: Optional[str] = None
    completion_date: Optional[str] = None
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    priority: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None
    appointment_id: Optional[str] = None

    @field_validator("tooth_number")
    @classmethod
    def check_tooth_number(cls, v: Optional[int]) -> Optional[int]:  # noqa: N805
        return _tooth(v)

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


class ToothTreatmentUpdate(_Payload):
    """Fields a caller may change; ``priority`` is only changed by reordering."""

    tooth_number: Optional[int] = None
    tooth_name: Optional[str] = None
    treatment_type: Optional[str] = Field(default=None, min_length=1)
    treatment_category: Optional[str] = None
    treatment_status: Optional[TreatmentStatus] = None
    treatment_color: Optional[str] = None
    start_date: Optional[str] = None
    completion_date: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    appointment_id: Optional[str] = None

    @field_validator("tooth_number")
    @classmethod
    def check_tooth_number(cls, v: Optional[int]) -> Optional[int]:  # noqa: N805
        return _tooth(v)

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


class TreatmentSessionCreate(_Payload):
    id: Optional[str] = None
    tooth_treatment_id: str
    session_type: str = Field(min_length=1)
    session_title: str = Field(min_length=1)
    session_description: Optional[str] = None
    session_date: str
    session_status: SessionStatus = "planned"
    duration_minutes: int = Field(default=30, gt=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


class TreatmentSessionUpdate(_Payload):
    session_type: Optional[str] = None
    session_title: Optional[str] = None
    session_description: Optional[str] = None
    session_date: Optional[str] = None
    session_status: Optional[SessionStatus] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


class ToothTreatmentImageCreate(_Payload):
    id: Optional[str] = None
    tooth_treatment_id: Optional[str] = None
    patient_id: str = Field(min_length=1)
    tooth_number: int
    image_path: str = Field(min_length=1)
    image_type: str = Field(min_length=1)
    description: Optional[str] = None
    taken_date: Optional[str] = None

    @field_validator("tooth_number")
    @classmethod
    def check_tooth_number(cls, v: Optional[int]) -> Optional[int]:  # noqa: N805
        return _tooth(v)

    @field_validator("taken_date")
    @classmethod
    def normalise_timestamps(cls, v: Optional[str]) -> Optional[str]:  # noqa: N805
        return _timestamp(v)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class PaymentCreate(_Payload):
    """A payment; linked to at most one billable entity.

    ``total_amount_due``, ``amount_paid`` and ``remaining_balance`` seed the
    balance of an unlinked payment and are recomputed for linked ones.
    """

    id: Optional[str] = None
    patient_id: str
    tooth_treatment_id: Optional[str] = None
    lab_order_id: Optional[str] = None
    appointment_id: Optional[str] = None
    amount: Decimal = Field(ge=0)
    payment_method: str = Field(min_length=1)
    payment_date: str
    description: Optional[str] = None
    receipt_number: Optional[str] = None
    status: str = "completed"
    notes: Optional[str] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    total_amount_due: Optional[Decimal] = Field(default=None, ge=0)
    amount_paid: Optional[Decimal] = Field(default=None, ge=0)
    remaining_balance: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator(
        "amount",
        "discount_amount",
        "tax_amount",
        "total_amount",
        "total_amount_due",
        "amount_paid",
        "remaining_balance",
    )
    @classmethod
    def quantize_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)

    @model_validator(mode="after")
    def single_link(self) -> "PaymentCreate":
        if self.tooth_treatment_id and self.lab_order_id:
            raise ValueError("a payment links to a treatment or a lab order, not both")
        return self


class PaymentUpdate(_Payload):
    tooth_treatment_id: Optional[str] = None
    lab_order_id: Optional[str] = None
    appointment_id: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    payment_method: Optional[str] = None
    payment_date: Optional[str] = None
    description: Optional[str] = None
    receipt_number: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    total_amount_due: Optional[Decimal] = Field(default=None, ge=0)
    amount_paid: Optional[Decimal] = Field(default=None, ge=0)
    remaining_balance: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator(
        "amount",
        "discount_amount",
        "tax_amount",
        "total_amount",
        "total_amount_due",
        "amount_paid",
        "remaining_balance",
    )
    @classmethod
    def quantize_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)

    @model_validator(mode="after")
    def single_link(self) -> "PaymentUpdate":
        if self.tooth_treatment_id and self.lab_order_id:
            raise ValueError("a payment links to a treatment or a lab order, not both")
        return self


# ---------------------------------------------------------------------------
# Labs and lab orders
# ---------------------------------------------------------------------------


class LabCreate(_Payload):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    contact_info: Optional[str] = None
    address: Optional[str] = None


class LabUpdate(_Payload):
    name: Optional[str] = Field(default=None, min_length=1)
    contact_info: Optional[str] = None
    address: Optional[str] = None


class LabOrderCreate(_Payload):
    id: Optional[str] = None
    lab_id: str
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None
    tooth_treatment_id: Optional[str] = None
    tooth_number: Optional[int] = None
    service_name: str = Field(min_length=1)
    cost: Decimal = Field(ge=0)
    order_date: str
    expected_delivery_date: Optional[str] = None
    actual_delivery_date: Optional[str] = None
    status: LabOrderStatus = "معلق"
    notes: Optional[str] = None
    priority: int = Field(default=1, ge=1)
    lab_instructions: Optional[str] = None
    material_type: Optional[str] = None
    color_shade: Optional[str] = None

    @field_validator("tooth_number")
    @classmethod
    def check_tooth_number(cls, v: Optional[int]) -> Optional[int]:  # noqa: N805
        return _tooth(v)

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


class LabOrderUpdate(_Payload):
    lab_id: Optional[str] = None
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None
    tooth_treatment_id: Optional[str] = None
    tooth_number: Optional[int] = None
    service_name: Optional[str] = Field(default=None, min_length=1)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    order_date: Optional[str] = None
    expected_delivery_date: Optional[str] = None
    actual_delivery_date: Optional[str] = None
    status: Optional[LabOrderStatus] = None
    notes: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=1)
    lab_instructions: Optional[str] = None
    material_type: Optional[str] = None
    color_shade: Optional[str] = None

    @field_validator("tooth_number")
    @classmethod
    def check_tooth_number(cls, v: Optional[int]) -> Optional[int]:  # noqa: N805
        return _tooth(v)

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


# ---------------------------------------------------------------------------
# Clinic needs
# ---------------------------------------------------------------------------


class ClinicNeedCreate(_Payload):
    id: Optional[str] = None
    serial_number: Optional[str] = None
    need_name: str = Field(min_length=1)
    quantity: int = Field(default=1, gt=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    description: Optional[str] = None
    category: Optional[str] = None
    priority: NeedPriority = "medium"
    status: NeedStatus = "pending"
    supplier: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("price")
    @classmethod
    def quantize_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


class ClinicNeedUpdate(_Payload):
    need_name: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[int] = Field(default=None, gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[NeedPriority] = None
    status: Optional[NeedStatus] = None
    supplier: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("price")
    @classmethod
    def quantize_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


class AppointmentCreate(_Payload):
    id: Optional[str] = None
    patient_id: str = Field(min_length=1)
    treatment_id: Optional[str] = None
    title: str = Field(min_length=1)
    description: Optional[str] = None
    start_time: str = Field(min_length=1)
    end_time: str = Field(min_length=1)
    status: AppointmentStatus = "scheduled"
    cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalise_timestamps(cls, v: Optional[str]) -> Optional[str]:  # noqa: N805
        return _timestamp(v)

    @field_validator("treatment_id")
    @classmethod
    def blank_treatment(cls, v: Optional[str]) -> Optional[str]:  # noqa: N805
        return v or None

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)

    @model_validator(mode="after")
    def ends_after_start(self) -> "AppointmentCreate":
        if self.end_time <= self.start_time:
            raise ValueError("an appointment must end after it starts")
        return self


class AppointmentUpdate(_Payload):
    treatment_id: Optional[str] = None
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalise_timestamps(cls, v: Optional[str]) -> Optional[str]:  # noqa: N805
        return _timestamp(v)

    @field_validator("cost")
    @classmethod
    def quantize_cost(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


# ---------------------------------------------------------------------------
# Medications and prescriptions
# ---------------------------------------------------------------------------


class MedicationCreate(_Payload):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    instructions: Optional[str] = None


class MedicationUpdate(_Payload):
    name: Optional[str] = Field(default=None, min_length=1)
    instructions: Optional[str] = None


class PrescribedMedication(_Payload):
    medication_id: str = Field(min_length=1)
    dose: str = ""


class PrescriptionCreate(_Payload):
    id: Optional[str] = None
    patient_id: str = Field(min_length=1)
    appointment_id: Optional[str] = None
    tooth_treatment_id: Optional[str] = None
    prescription_date: str
    notes: Optional[str] = None
    medications: List[PrescribedMedication] = Field(default_factory=list)


class PrescriptionUpdate(_Payload):
    """``medications``, when given, replaces the whole list."""

    appointment_id: Optional[str] = None
    tooth_treatment_id: Optional[str] = None
    prescription_date: Optional[str] = None
    notes: Optional[str] = None
    medications: Optional[List[PrescribedMedication]] = None


# ---------------------------------------------------------------------------
# Clinic expenses
# ---------------------------------------------------------------------------


class ClinicExpenseCreate(_Payload):
    id: Optional[str] = None
    expense_name: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    expense_type: ExpenseType
    category: Optional[str] = None
    description: Optional[str] = None
    payment_method: ExpensePaymentMethod
    payment_date: str
    due_date: Optional[str] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_end_date: Optional[str] = None
    status: ExpenseStatus = "pending"
    receipt_number: Optional[str] = None
    vendor: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)

    @model_validator(mode="after")
    def recurring_needs_frequency(self) -> "ClinicExpenseCreate":
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("a recurring expense needs a recurring_frequency")
        return self


class ClinicExpenseUpdate(_Payload):
    expense_name: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    expense_type: Optional[ExpenseType] = None
    category: Optional[str] = None
    description: Optional[str] = None
    payment_method: Optional[ExpensePaymentMethod] = None
    payment_date: Optional[str] = None
    due_date: Optional[str] = None
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_end_date: Optional[str] = None
    status: Optional[ExpenseStatus] = None
    receipt_number: Optional[str] = None
    vendor: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:  # noqa: N805
        return _money(v)


# ---------------------------------------------------------------------------
# Smart alerts
# ---------------------------------------------------------------------------


class AppointmentRef(BaseModel):
    kind: Literal["appointment"] = "appointment"
    appointment_id: str


class PaymentRef(BaseModel):
    kind: Literal["payment"] = "payment"
    payment_id: str


class TreatmentRef(BaseModel):
    kind: Literal["treatment"] = "treatment"
    treatment_id: str


class FollowUpRef(BaseModel):
    kind: Literal["follow_up"] = "follow_up"
    appointment_id: Optional[str] = None
    treatment_id: Optional[str] = None


class PrescriptionRef(BaseModel):
    kind: Literal["prescription"] = "prescription"
    prescription_id: str


class LabOrderRef(BaseModel):
    kind: Literal["lab_order"] = "lab_order"
    lab_order_id: str


class InventoryRef(BaseModel):
    kind: Literal["inventory"] = "inventory"
    inventory_id: str


RelatedData = Annotated[
    Union[
        AppointmentRef,
        PaymentRef,
        TreatmentRef,
        FollowUpRef,
        PrescriptionRef,
        LabOrderRef,
        InventoryRef,
    ],
    Field(discriminator="kind"),
]

_RELATED_ADAPTER: TypeAdapter[Any] = TypeAdapter(RelatedData)

# camelCase keys written by older builds, keyed by alert type.
_LEGACY_RELATED_KEYS: Dict[str, Dict[str, str]] = {
    "appointment": {"appointmentId": "appointment_id"},
    "payment": {"paymentId": "payment_id"},
    "treatment": {"treatmentId": "treatment_id"},
    "follow_up": {"appointmentId": "appointment_id", "treatmentId": "treatment_id"},
    "prescription": {"prescriptionId": "prescription_id"},
    "lab_order": {"labOrderId": "lab_order_id"},
    "inventory": {"inventoryId": "inventory_id"},
}


def related_to_json(related: Optional[BaseModel]) -> Optional[str]:
    if related is None:
        return None
    return related.model_dump_json(exclude_none=True)


def related_from_json(alert_type: str, raw: Optional[str]) -> Optional[BaseModel]:
    """Read stored related data back into its variant.

    Untagged payloads from older builds are mapped by alert type; anything
    that does not fit the variant is dropped.
    """

    if raw in (None, "", "{}"):
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    if "kind" not in data:
        keys = _LEGACY_RELATED_KEYS.get(alert_type, {})
        converted = {new: data[old] for old, new in keys.items() if data.get(old)}
        if not converted:
            return None
        data = {"kind": alert_type, **converted}
    try:
        return _RELATED_ADAPTER.validate_python(data)
    except ValidationError:
        return None


class AlertCreate(_Payload):
    id: Optional[str] = None
    type: AlertType
    priority: AlertPriority = "medium"
    title: str = Field(min_length=1)
    description: str = ""
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    related: Optional[RelatedData] = None
    action_required: bool = False
    due_date: Optional[str] = None
    is_read: bool = False
    is_dismissed: bool = False
    snooze_until: Optional[str] = None

    @field_validator("snooze_until", "due_date")
    @classmethod
    def normalise_timestamps(cls, v: Optional[str]) -> Optional[str]:  # noqa: N805
        return _timestamp(v)

    @model_validator(mode="after")
    def related_matches_type(self) -> "AlertCreate":
        if self.related is not None and self.related.kind != self.type:
            raise ValueError(f"related data of kind {self.related.kind!r} on a {self.type!r} alert")
        return self


class AlertUpdate(_Payload):
    priority: Optional[AlertPriority] = None
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    patient_name: Optional[str] = None
    action_required: Optional[bool] = None
    due_date: Optional[str] = None
    is_read: Optional[bool] = None
    is_dismissed: Optional[bool] = None
    snooze_until: Optional[str] = None

    @field_validator("snooze_until", "due_date")
    @classmethod
    def normalise_timestamps(cls, v: Optional[str]) -> Optional[str]:  # noqa: N805
        return _timestamp(v)


class Alert(BaseModel):
    """A stored smart alert."""

    id: str
    type: AlertType
    priority: AlertPriority
    title: str
    description: str
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    related: Optional[RelatedData] = None
    action_required: bool = False
    due_date: Optional[str] = None
    is_read: bool = False
    is_dismissed: bool = False
    snooze_until: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Boundary helper
# ---------------------------------------------------------------------------


def validate(model: Type[ModelT], payload: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    """Return ``payload`` as ``model``, converting validation errors."""

    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise ConstraintViolation(
            f"Invalid value for {location}: {first.get('msg', 'invalid value')}",
            detail=str(exc),
        ) from exc


__all__ = [
    "Alert",
    "AlertCreate",
    "AlertUpdate",
    "AppointmentCreate",
    "AppointmentRef",
    "AppointmentUpdate",
    "ClinicExpenseCreate",
    "ClinicExpenseUpdate",
    "ClinicNeedCreate",
    "ClinicNeedUpdate",
    "FollowUpRef",
    "InventoryRef",
    "LabCreate",
    "LabOrderCreate",
    "LabOrderRef",
    "LabOrderUpdate",
    "LabUpdate",
    "MedicationCreate",
    "MedicationUpdate",
    "PatientCreate",
    "PatientUpdate",
    "PaymentCreate",
    "PaymentRef",
    "PaymentUpdate",
    "PrescribedMedication",
    "PrescriptionCreate",
    "PrescriptionRef",
    "PrescriptionUpdate",
    "RelatedData",
    "ToothTreatmentCreate",
    "ToothTreatmentImageCreate",
    "ToothTreatmentUpdate",
    "TreatmentRef",
    "TreatmentSessionCreate",
    "TreatmentSessionUpdate",
    "related_from_json",
    "related_to_json",
    "validate",
]
