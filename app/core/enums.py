from enum import Enum


class UserRole(str, Enum):
    SUPERADMIN = "superadmin"
    SCHOOLADMIN = "schooladmin"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
