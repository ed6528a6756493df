from app.db.base import Base  # noqa: F401

from . import user              # noqa: F401
from . import environment       # noqa: F401
from . import segment           # noqa: F401
from . import incident_type     # noqa: F401
from . import criticality       # noqa: F401
from . import incident          # noqa: F401
from . import approval_request  # noqa: F401
from . import audit_log         # noqa: F401
