from pydantic import BaseModel, ConfigDict
from typing import Any, Optional, Literal
from datetime import date, datetime

AssetStatus = Literal["available", "assigned", "under_maintenance", "retired"]
AssetCategory = Literal[
    "laptop", "desktop", "monitor", "keyboard", "mouse",
    "headset", "printer", "phone", "tablet", "other",
]
AllocationStatus = Literal["active", "returned"]
Condition = Literal["excellent", "good", "fair", "poor"]
TransferStatus = Literal["pending", "approved_by_from", "approved_by_to", "completed", "rejected"]
ScheduleStatus = Literal["scheduled", "completed", "overdue"]
TicketStatus = Literal["open", "in_progress", "resolved", "closed", "on_hold", "cancelled"]
TicketPriority = Literal["low", "medium", "high", "critical"]
IssueCategory = Literal["hardware", "software", "network", "access"]
RequestStatus = Literal["pending", "in_progress", "approved", "rejected", "completed", "cancelled"]
RequestType = Literal["regular", "urgent", "express"]
NotificationStatus = Literal["pending", "sent", "failed", "skipped"]

# ---------- Profile ----------
class Profile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str
    department: Optional[str] = None
    employee_id: Optional[str] = None
    role: str = "user"
    is_active: bool = True

# ---------- Asset ----------
class AssetIn(BaseModel):
    name: str
    asset_tag: str
    asset_id: Optional[str] = None
    category: AssetCategory = "other"
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    specifications: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[float] = None
    warranty_end_date: Optional[date] = None

class AssetUpdate(BaseModel):
    name: Optional[str] = None
    asset_tag: Optional[str] = None
    category: Optional[AssetCategory] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    specifications: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[float] = None
    warranty_end_date: Optional[date] = None

class AssetStatusIn(BaseModel):
    status: AssetStatus
    notes: Optional[str] = None

class Asset(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    asset_id: str
    asset_tag: str
    name: str
    category: AssetCategory
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    specifications: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[float] = None
    warranty_end_date: Optional[date] = None
    status: AssetStatus = "available"
    current_assignee_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class AssetsMeta(BaseModel):
    total: int
    limit: int
    offset: int
    total_pages: int

class AssetActivity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    asset_id: str
    activity_type: str
    description: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: datetime

# ---------- Allocation ----------
class AllocationIn(BaseModel):
    asset_id: str
    employee_id: str
    department: Optional[str] = None
    location: Optional[str] = None
    allocated_date: Optional[date] = None
    condition: Condition = "good"
    notes: Optional[str] = None

class AllocationUpdate(BaseModel):
    department: Optional[str] = None
    location: Optional[str] = None
    condition: Optional[Condition] = None
    notes: Optional[str] = None

class AllocationReturnIn(BaseModel):
    condition: Optional[Condition] = None
    notes: Optional[str] = None

class Allocation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    asset_id: str
    employee_id: str
    employee_name: str
    department: Optional[str] = None
    location: Optional[str] = None
    condition: Condition
    status: AllocationStatus
    allocated_date: date
    return_date: Optional[date] = None
    notes: Optional[str] = None
    allocated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

# ---------- Transfer ----------
class TransferIn(BaseModel):
    asset_id: str
    to_user_id: str
    notes: Optional[str] = None

class TransferRejectIn(BaseModel):
    reason: Optional[str] = None

class Transfer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    asset_id: str
    from_user_id: Optional[str] = None
    to_user_id: str
    initiated_by: str
    status: TransferStatus
    from_user_approved: bool = False
    from_user_approved_at: Optional[datetime] = None
    to_user_approved: bool = False
    to_user_approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    initiated_at: datetime
    completed_at: Optional[datetime] = None
    updated_at: datetime

# ---------- Maintenance ----------
class MaintenanceScheduleIn(BaseModel):
    asset_id: str
    maintenance_type: str
    frequency: str
    # kept as text so unparseable dates surface as a ValidationError, not a 422
    next_maintenance_date: str
    assigned_to: Optional[str] = None
    notes: Optional[str] = None

class MaintenanceCompleteIn(BaseModel):
    performed_date: str
    cost: Optional[float] = None
    vendor: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None

class MaintenanceOverdueIn(BaseModel):
    today: Optional[date] = None

class MaintenanceSchedule(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    asset_id: str
    maintenance_type: str
    frequency: str
    next_maintenance_date: date
    last_maintenance_date: Optional[date] = None
    status: ScheduleStatus
    assigned_to: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class MaintenanceHistory(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    asset_id: str
    schedule_id: Optional[str] = None
    maintenance_type: str
    maintenance_date: date
    cost: Optional[float] = None
    vendor: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: datetime

# ---------- Ticket ----------
class TicketIn(BaseModel):
    title: str
    description: str
    issue_category: IssueCategory
    priority: TicketPriority = "medium"
    asset_id: Optional[str] = None
    department: Optional[str] = None
    location: Optional[str] = None

class TicketUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    issue_category: Optional[IssueCategory] = None
    priority: Optional[TicketPriority] = None
    department: Optional[str] = None
    location: Optional[str] = None
    assigned_to: Optional[str] = None

class TicketStatusIn(BaseModel):
    status: TicketStatus
    remarks: Optional[str] = None

class Ticket(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    asset_id: Optional[str] = None
    title: str
    description: str
    issue_category: IssueCategory
    priority: TicketPriority
    status: TicketStatus
    department: Optional[str] = None
    location: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: str
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

class TicketHistory(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    action: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime

# ---------- Asset request ----------
class AssetRequestIn(BaseModel):
    category: AssetCategory
    reason: str
    quantity: int = 1
    request_type: RequestType = "regular"
    department: Optional[str] = None
    location: Optional[str] = None
    specification: Optional[str] = None
    employment_type: Optional[str] = None
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = None

class AssetRequestUpdate(BaseModel):
    category: Optional[AssetCategory] = None
    reason: Optional[str] = None
    quantity: Optional[int] = None
    request_type: Optional[RequestType] = None
    department: Optional[str] = None
    location: Optional[str] = None
    specification: Optional[str] = None
    employment_type: Optional[str] = None
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = None

class AssetRequestDecisionIn(BaseModel):
    remarks: Optional[str] = None

class AssetRequest(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    requester_id: str
    category: AssetCategory
    reason: str
    quantity: int
    request_type: RequestType
    status: RequestStatus
    department: Optional[str] = None
    location: Optional[str] = None
    specification: Optional[str] = None
    employment_type: Optional[str] = None
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

class RequestHistory(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    action: str
    performed_by: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime

# ---------- Dashboard ----------
class DashboardSummary(BaseModel):
    total_assets: int
    assets_by_status: dict[str, int]
    assets_by_category: dict[str, int]
    active_allocations: int
    open_tickets: int
    pending_transfers: int
    maintenance_due: int
    requests_by_status: dict[str, int]

# ---------- Notification ----------
class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    recipient_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    subject: Optional[str] = None
    payload: dict[str, Any]
    status: NotificationStatus
    error_message: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None

class NotificationSettingIn(BaseModel):
    enabled: bool
