from app.models.base import Base  # noqa: F401

from app.models.host import Host  # noqa: F401
from app.models.availability_pattern import AvailabilityPattern  # noqa: F401
from app.models.busy_interval import BusyInterval  # noqa: F401
from app.models.company_holiday import CompanyHoliday  # noqa: F401
from app.models.event import Event, EventHost  # noqa: F401
from app.models.slot import Slot  # noqa: F401
from app.models.booking import Booking  # noqa: F401
from app.models.round_robin_state import RoundRobinState, RoundRobinCursor  # noqa: F401
