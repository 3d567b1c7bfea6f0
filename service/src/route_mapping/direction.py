from enum import StrEnum


class Direction(StrEnum):
    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"


class RouteMode(StrEnum):
    ACTIVE = "ACTIVE"
    PASSIVE = "PASSIVE"


# document key holding each direction's rules
MAPPING_KEYS = {
    Direction.REQUEST: "requestMappings",
    Direction.RESPONSE: "responseMappings",
}
