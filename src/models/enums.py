import enum


class ActorRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


class EntityType(str, enum.Enum):
    TICKET = "ticket"
    REFUND = "refund"
    REPLACEMENT = "replacement"
    ORDER = "order"
    RETURN = "return"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ── Collaborator records ────────────────────────────────────────────────


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    REPLACEMENT_INITIATED = "replacement_initiated"


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    MORE_INFO_NEEDED = "more_info_needed"
    APPROVED = "approved"
    REJECTED = "rejected"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKUP_FAILED = "pickup_failed"
    AWAITING_RETURN = "awaiting_return"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    INSPECTING = "inspecting"
    INSPECTION_PASSED = "inspection_passed"
    INSPECTION_FAILED = "inspection_failed"
    REFUND_INITIATED = "refund_initiated"
    REFUND_PARTIAL = "refund_partial"
    REPLACEMENT_INITIATED = "replacement_initiated"
    COMPLETED = "completed"


# ── Support tickets ─────────────────────────────────────────────────────


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    AWAITING_CUSTOMER = "awaiting_customer"
    AWAITING_INTERNAL = "awaiting_internal"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, enum.Enum):
    GENERAL = "general"
    ORDER = "order"
    PAYMENT = "payment"
    DELIVERY = "delivery"
    PRODUCT = "product"
    REFUND = "refund"
    RETURN = "return"
    ACCOUNT = "account"
    TECHNICAL = "technical"
    FEEDBACK = "feedback"
    OTHER = "other"


class MessageSenderType(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


# ── Refunds ─────────────────────────────────────────────────────────────


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class RefundReason(str, enum.Enum):
    RETURN = "return"
    ORDER_CANCELLED = "order_cancelled"
    PARTIAL_DELIVERY = "partial_delivery"
    DAMAGED_PRODUCT = "damaged_product"
    WRONG_PRODUCT = "wrong_product"
    DUPLICATE_PAYMENT = "duplicate_payment"
    OVERCHARGE = "overcharge"
    GOODWILL = "goodwill"
    OTHER = "other"


class PaymentMode(str, enum.Enum):
    ORIGINAL = "original"
    WALLET = "wallet"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CHEQUE = "cheque"


# ── Replacements ────────────────────────────────────────────────────────


class ReplacementStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ReplacementReason(str, enum.Enum):
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    DAMAGED_SHIPPING = "damaged_shipping"
    MISSING_PARTS = "missing_parts"
    QUALITY_ISSUE = "quality_issue"
    SIZE_EXCHANGE = "size_exchange"
    WARRANTY = "warranty"
    OTHER = "other"
