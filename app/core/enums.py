from enum import Enum


class PromotionAction(str, Enum):
    """Administrator decision for one student during year rollover."""

    PROMOTE = "promote"
    REPEAT = "repeat"
    UNASSIGN = "unassign"


class InstitutionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
