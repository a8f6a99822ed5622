from enum import Enum


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PAYMENT_STATUSES


TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.FAILED})


class PaymentGateway(str, Enum):
    MERCADOPAGO = "mercadopago"
    STRIPE = "stripe"


class SignatureFormat(str, Enum):
    MANIFEST = "manifest"
    TIMESTAMP_METHOD_PATH_BODY = "timestamp_method_path_body"
    TIMESTAMP_BODY = "timestamp_body"


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_TERMINAL = "already_terminal"
    UNCHANGED = "unchanged"


class NotificationStatus(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    FAILED = "failed"


class EnrollmentAction(str, Enum):
    ENROLL = "enroll"
    UNENROLL = "unenroll"


class EnrollmentSource(str, Enum):
    PAYMENT = "payment"
    EXTERNAL = "external"


class OutboundEvent(str, Enum):
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
