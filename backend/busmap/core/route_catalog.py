"""Static per-route data for the Nuup Bussii network.

Stop references here are by name; they are resolved against the stop
registry when a route is loaded, and entries whose names do not resolve are
ignored.
"""

from dataclasses import dataclass, field

from busmap.core.osrm_client import LatLon
from busmap.core.schedule_parser import TimeParser, parse_annotated_time_value, parse_time_value

DEFAULT_ROUTE_COLOR = "#6b7280"


@dataclass(frozen=True)
class WaypointOverride:
    from_name: str
    to_name: str
    via: tuple[LatLon, ...]


@dataclass(frozen=True)
class RouteOverrides:
    number: str
    name: str
    color: str
    schedule_asset: str
    line_color: str | None = None
    aliases: dict[str, str] = field(default_factory=dict)
    time_parser: TimeParser = parse_time_value
    # stop name -> (lat, lon) used instead of the registry position
    stop_coordinates: dict[str, LatLon] = field(default_factory=dict)
    waypoints: tuple[WaypointOverride, ...] = ()
    # (after stop name, inserted stop name)
    stop_insertions: tuple[tuple[str, str], ...] = ()

    @property
    def path_color(self) -> str:
        return self.line_color or self.color


# Shared road geometry around Qajaasat / Nerngallaa (route 2 loops through it both ways)
QAJAASAT_EAST_LOOP: tuple[LatLon, ...] = (
    (64.1916104, -51.7101013),
    (64.1915567, -51.7100176),
    (64.1915258, -51.7099315),
    (64.1914999, -51.7098143),
    (64.1913766, -51.7092791),
    (64.1914114, -51.7091295),
    (64.1914857, -51.7090327),
    (64.1916717, -51.7087882),
    (64.1918344, -51.7085711),
    (64.1919080, -51.7084621),
    (64.1920090, -51.7087980),
    (64.1921290, -51.7093130),
    (64.1922100, -51.7097960),
    (64.1922270, -51.7100139),
)

NERNGALLAA_WAYPOINTS: tuple[LatLon, ...] = (
    (64.1922270, -51.7100139),
    (64.1922296, -51.7101225),
    (64.1922317, -51.7103159),
    (64.1922245, -51.7105423),
    (64.1922016, -51.7107892),
    (64.1921497, -51.7111533),
    (64.1920994, -51.7113554),
    (64.1920459, -51.7115349),
    (64.1919944, -51.7116747),
    (64.1919623, -51.7117587),
    (64.1918730, -51.7119578),
    (64.1917070, -51.7121840),
    (64.1916413, -51.7122480),
    (64.1915540, -51.7123149),
    (64.1914255, -51.7123629),
    (64.1913337, -51.7123608),
    (64.1912056, -51.7123431),
    (64.1911195, -51.7123036),
    (64.1908911, -51.7120748),
    (64.1907749, -51.7119366),
    (64.1907070, -51.7118602),
    (64.1906927, -51.7118444),
    (64.1906501, -51.7117979),
    (64.1904646, -51.7117090),
    (64.1902684, -51.7116964),
    (64.1900784, -51.7117777),
    (64.1899671, -51.7118770),
    (64.1898116, -51.7120599),
    (64.1896582, -51.7122542),
    (64.1895480, -51.7124279),
    (64.1893676, -51.7127198),
    (64.1892176, -51.7128853),
    (64.1890976, -51.7129902),
    (64.1890190, -51.7130288),
    (64.1889932, -51.7130354),
)

QAJAASAT_SOUTH_ENTRY: LatLon = (64.1916104, -51.7101013)

NERNGALLAA_TO_EQALUGALINNGUIT: tuple[LatLon, ...] = (
    (64.1889932, -51.7130354),
    (64.1889390, -51.7129902),
    (64.1888742, -51.7129718),
    (64.1887966, -51.7129002),
    (64.1887705, -51.7128333),
    (64.1887538, -51.7126324),
    (64.1887401, -51.7120590),
    (64.1887350, -51.7117861),
)

_NERNGALLAA_TO_QAJAASAT_SOUTH = (
    *(p for p in reversed(NERNGALLAA_WAYPOINTS) if p[0] <= QAJAASAT_SOUTH_ENTRY[0]),
    QAJAASAT_SOUTH_ENTRY,
)

ILIMMARFIK: LatLon = (64.1916837851373, -51.69477566525993)

ROUTES: dict[str, RouteOverrides] = {
    "1": RouteOverrides(
        number="1",
        name="Rute 1",
        color="#E91E8C",
        schedule_asset="Timecodes - Nuup Bussii - Sheet1.csv",
        stop_coordinates={
            "Maligiaq": (64.1840093, -51.6980487),
            "Tuujuk": (64.1718429, -51.7348946),
            "Røde etagehuse": (64.1706171, -51.7314713),
            "Kommuneqarfik": (64.1755706, -51.7361803),
            "Asiarpak": (64.1769404, -51.679224),
            "Pukuffik": (64.1833869, -51.6966426),
        },
        waypoints=(
            WaypointOverride("Naluttarfik Malik", "Maligiaq", ((64.1839326, -51.6978638),)),
            WaypointOverride("Maligiaq", "Tikiusaaq", (
                (64.1835419, -51.6971834),
                (64.1824822, -51.6949691),
                (64.1812975, -51.6940293),
                (64.1808209, -51.6935036),
                (64.1797812, -51.6897324),
            )),
            WaypointOverride("Tuujuk", "Kommuneqarfik", (
                (64.1718429, -51.7348946),
                (64.1747954, -51.7368738),
                (64.1755706, -51.7361803),
            )),
            WaypointOverride("Røde etagehuse", "Tuujuk", (
                (64.1706171, -51.7314713),
                (64.1713957, -51.733641),
                (64.1718429, -51.7348946),
            )),
            WaypointOverride("Asiarpak", "Pukuffik", (
                (64.1769404, -51.679224),
                (64.177231, -51.6819914),
                (64.1777499, -51.6842717),
                (64.1793548, -51.6881043),
                (64.1797812, -51.6897324),
                (64.1810101, -51.6937396),
                (64.182621, -51.6951558),
                (64.1833869, -51.6966426),
            )),
        ),
    ),
    "2": RouteOverrides(
        number="2",
        name="Rute 2",
        color="#FFD700",
        line_color="#DAA520",
        schedule_asset="timecodes_bus_2.csv",
        waypoints=(
            WaypointOverride("Akunnerit", "Qajaasat", (
                *_NERNGALLAA_TO_QAJAASAT_SOUTH, *QAJAASAT_EAST_LOOP[1:],
            )),
            WaypointOverride("Nuniaffik", "Qajaasat", (
                *reversed(NERNGALLAA_WAYPOINTS), *tuple(reversed(QAJAASAT_EAST_LOOP))[1:],
            )),
            WaypointOverride("Qajaasat", "Eqalugalinnguit", (
                *QAJAASAT_EAST_LOOP, *NERNGALLAA_WAYPOINTS[1:], *NERNGALLAA_TO_EQALUGALINNGUIT[1:],
            )),
            WaypointOverride("Qajaasat", "Paarnat", (
                *QAJAASAT_EAST_LOOP, *NERNGALLAA_WAYPOINTS[1:],
            )),
        ),
        stop_insertions=(("Nuniaffik", "Qajaasat"),),
    ),
    "3": RouteOverrides(
        number="3",
        name="Rute 3",
        color="#4CAF50",
        schedule_asset="timecodes_bus_3.csv",
        aliases={"qatseritsut": "qatserisut"},
        stop_coordinates={"Ilimmarfik": ILIMMARFIK},
        waypoints=(WaypointOverride("Ilimmarfik", "Siaqqinneq Nukappiakkuluk", (ILIMMARFIK,)),),
    ),
    "X2": RouteOverrides(
        number="X2",
        name="Rute X2",
        color="#808080",
        schedule_asset="timecodes_bus_X2.csv",
    ),
    "E2": RouteOverrides(
        number="E2",
        name="Rute E2",
        color="#0066CC",
        schedule_asset="timecodes_bus_E2.csv",
    ),
    "X3": RouteOverrides(
        number="X3",
        name="Rute X3",
        color="#00b047",
        schedule_asset="timecodes_bus_X3.csv",
        aliases={
            "airgreenlandadm": "airgreenlandadm",
            "mittarfiklufthavn": "nuuklufthavn",
            "nukappiakuluk": "siaqqinneqnukappiakkuluk",
        },
        time_parser=parse_annotated_time_value,
        stop_coordinates={"Ilimmarfik": ILIMMARFIK},
        waypoints=(WaypointOverride("Ilimmarfik", "Siaqqinneq Nukappiakkuluk", (ILIMMARFIK,)),),
    ),
}


def get_route(number: str | None) -> RouteOverrides | None:
    if not number:
        return None
    return ROUTES.get(number.strip().upper())


def route_color(number: str | None) -> str:
    route = get_route(number)
    return route.color if route else DEFAULT_ROUTE_COLOR
