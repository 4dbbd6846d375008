# Models package
from roster_import.models.user import User
from roster_import.models.tenant import Tenant
from roster_import.models.unit import Unit, UnitType
from roster_import.models.import_session import ImportSession, SessionStatus, SourceFormat

__all__ = ["User", "Tenant", "Unit", "UnitType", "ImportSession", "SessionStatus", "SourceFormat"]
