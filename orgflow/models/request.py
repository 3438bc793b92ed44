from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter, model_validator

from orgflow.models.employee import CamelModel


class RequestType(str, Enum):
    LEAVE = "LEAVE"
    ASSET = "ASSET"
    LOAN = "LOAN"
    PUNCH_CORRECTION = "PUNCH_CORRECTION"
    CLEARANCE = "CLEARANCE"
    RESIGNATION = "RESIGNATION"
    CONTRACT_NON_RENEWAL = "CONTRACT_NON_RENEWAL"
    AUTHORIZATION = "AUTHORIZATION"
    LETTER = "LETTER_REQUEST"
    PERMISSION = "PERMISSION"


class RequestStatus(str, Enum):
    PENDING_MANAGER = "PENDING_MANAGER"
    PENDING_GM = "PENDING_GM"
    PENDING_HR = "PENDING_HR"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}
)

# The single linear chain shared by every request type.
APPROVAL_CHAIN: tuple[RequestStatus, ...] = (
    RequestStatus.PENDING_MANAGER,
    RequestStatus.PENDING_GM,
    RequestStatus.PENDING_HR,
    RequestStatus.APPROVED,
)


class LeaveDetails(CamelModel):
    type: Literal["LEAVE"] = "LEAVE"
    start_date: date
    end_date: date
    leave_type: str = Field(min_length=2, max_length=40)
    reason: str = Field(min_length=3, max_length=250)
    attachment_url: Optional[str] = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "LeaveDetails":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class AssetDetails(CamelModel):
    type: Literal["ASSET"] = "ASSET"
    item_name: str = Field(min_length=2, max_length=120)
    asset_type: str = Field(min_length=2, max_length=60)
    justification: str = Field(min_length=3, max_length=300)


class LoanDetails(CamelModel):
    type: Literal["LOAN"] = "LOAN"
    amount: float = Field(gt=0)
    installments: int = Field(ge=1, le=60)
    reason: str = Field(min_length=3, max_length=250)


class PunchCorrectionDetails(CamelModel):
    type: Literal["PUNCH_CORRECTION"] = "PUNCH_CORRECTION"
    day: date = Field(alias="date")
    correct_time: time
    punch_type: Literal["IN", "OUT"]
    reason: str = Field(min_length=3, max_length=250)


class ClearanceDetails(CamelModel):
    type: Literal["CLEARANCE"] = "CLEARANCE"
    last_working_day: date
    reason: str = Field(min_length=3, max_length=250)


class ResignationDetails(CamelModel):
    type: Literal["RESIGNATION"] = "RESIGNATION"
    last_working_day: date
    reason: str = Field(min_length=3, max_length=250)


class ContractNonRenewalDetails(CamelModel):
    type: Literal["CONTRACT_NON_RENEWAL"] = "CONTRACT_NON_RENEWAL"
    contract_end_date: date
    reason: str = Field(min_length=3, max_length=250)


class AuthorizationDetails(CamelModel):
    type: Literal["AUTHORIZATION"] = "AUTHORIZATION"
    authorized_person: str = Field(min_length=2, max_length=120)
    purpose: str = Field(min_length=3, max_length=250)
    valid_until: date


class LetterDetails(CamelModel):
    type: Literal["LETTER_REQUEST"] = "LETTER_REQUEST"
    letter_type: str = Field(min_length=2, max_length=60)
    addressee: str = Field(min_length=2, max_length=120)


class PermissionDetails(CamelModel):
    type: Literal["PERMISSION"] = "PERMISSION"
    day: date = Field(alias="date")
    from_time: time
    to_time: time
    reason: str = Field(min_length=3, max_length=250)

    @model_validator(mode="after")
    def validate_time_range(self) -> "PermissionDetails":
        if self.to_time <= self.from_time:
            raise ValueError("to_time must be after from_time")
        return self


RequestDetails = Annotated[
    Union[
        LeaveDetails,
        AssetDetails,
        LoanDetails,
        PunchCorrectionDetails,
        ClearanceDetails,
        ResignationDetails,
        ContractNonRenewalDetails,
        AuthorizationDetails,
        LetterDetails,
        PermissionDetails,
    ],
    Field(discriminator="type"),
]

request_details_adapter: TypeAdapter[RequestDetails] = TypeAdapter(RequestDetails)


class StatusChange(CamelModel):
    from_status: RequestStatus
    to_status: RequestStatus
    actor_id: str
    at: datetime
    note: Optional[str] = None


class ServiceRequest(CamelModel):
    id: str
    user_id: str
    user_name: Optional[str] = None
    type: RequestType
    status: RequestStatus = RequestStatus.PENDING_MANAGER
    details: RequestDetails
    created_at: datetime
    approver_id: Optional[str] = None
    history: list[StatusChange] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_details_tag(self) -> "ServiceRequest":
        if self.details.type != self.type:
            raise ValueError(
                f"details are tagged {self.details.type} but request type is {self.type.value}"
            )
        return self


class RequestCreate(CamelModel):
    type: RequestType
    details: dict


class StatusUpdate(CamelModel):
    status: RequestStatus
    note: Optional[str] = Field(default=None, max_length=300)


class DecisionNote(CamelModel):
    note: Optional[str] = Field(default=None, max_length=300)
