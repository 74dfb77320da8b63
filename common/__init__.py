#Shared helpers with no domain dependencies.
#HH:mm parsing and ISO weekday conversion used by routing, matching and dispatch.

from .timeutil import parse_hhmm, hour_of, iso_weekday, local_now, as_aware, WEEKDAYS, WEEKEND

__all__ = ["parse_hhmm", "hour_of", "iso_weekday", "local_now", "as_aware", "WEEKDAYS", "WEEKEND"]
