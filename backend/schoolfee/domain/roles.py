from enum import Enum


class AppRole(str, Enum):
    admin = "admin"
    super_admin = "super_admin"
