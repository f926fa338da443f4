"""Static catalog of US states grouped into the playable regions."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class Place:
    id: str
    name: str
    capital: str
    abbreviation: str


@dataclass(frozen=True)
class RegionOption:
    id: str
    name: str
    places: Tuple[Place, ...]
    available: bool = True

    @property
    def state_count(self) -> int:
        return len(self.places)

    @property
    def description(self) -> str:
        return ", ".join(p.name for p in sorted(self.places, key=lambda p: p.name))


class UnknownRegionError(KeyError):
    pass


class DuplicateCapitalError(ValueError):
    pass


def _place(code: str, name: str, capital: str) -> Place:
    # Two-letter postal codes double as ids and abbreviations
    return Place(id=code, name=name, capital=capital, abbreviation=code)


NORTHEAST_STATES: Tuple[Place, ...] = (
    _place("CT", "Connecticut", "Hartford"),
    _place("DE", "Delaware", "Dover"),
    _place("ME", "Maine", "Augusta"),
    _place("MD", "Maryland", "Annapolis"),
    _place("MA", "Massachusetts", "Boston"),
    _place("NH", "New Hampshire", "Concord"),
    _place("NJ", "New Jersey", "Trenton"),
    _place("NY", "New York", "Albany"),
    _place("PA", "Pennsylvania", "Harrisburg"),
    _place("RI", "Rhode Island", "Providence"),
    _place("VT", "Vermont", "Montpelier"),
)

SOUTHEAST_STATES: Tuple[Place, ...] = (
    _place("AL", "Alabama", "Montgomery"),
    _place("AR", "Arkansas", "Little Rock"),
    _place("FL", "Florida", "Tallahassee"),
    _place("GA", "Georgia", "Atlanta"),
    _place("KY", "Kentucky", "Frankfort"),
    _place("LA", "Louisiana", "Baton Rouge"),
    _place("MS", "Mississippi", "Jackson"),
    _place("NC", "North Carolina", "Raleigh"),
    _place("SC", "South Carolina", "Columbia"),
    _place("TN", "Tennessee", "Nashville"),
    _place("VA", "Virginia", "Richmond"),
    _place("WV", "West Virginia", "Charleston"),
)

MIDWEST_STATES: Tuple[Place, ...] = (
    _place("IL", "Illinois", "Springfield"),
    _place("IN", "Indiana", "Indianapolis"),
    _place("IA", "Iowa", "Des Moines"),
    _place("KS", "Kansas", "Topeka"),
    _place("MI", "Michigan", "Lansing"),
    _place("MN", "Minnesota", "Saint Paul"),
    _place("MO", "Missouri", "Jefferson City"),
    _place("NE", "Nebraska", "Lincoln"),
    _place("ND", "North Dakota", "Bismarck"),
    _place("OH", "Ohio", "Columbus"),
    _place("SD", "South Dakota", "Pierre"),
    _place("WI", "Wisconsin", "Madison"),
)

WEST_STATES: Tuple[Place, ...] = (
    _place("AK", "Alaska", "Juneau"),
    _place("CA", "California", "Sacramento"),
    _place("CO", "Colorado", "Denver"),
    _place("HI", "Hawaii", "Honolulu"),
    _place("ID", "Idaho", "Boise"),
    _place("MT", "Montana", "Helena"),
    _place("NV", "Nevada", "Carson City"),
    _place("OR", "Oregon", "Salem"),
    _place("UT", "Utah", "Salt Lake City"),
    _place("WA", "Washington", "Olympia"),
    _place("WY", "Wyoming", "Cheyenne"),
)

SOUTHWEST_STATES: Tuple[Place, ...] = (
    _place("AZ", "Arizona", "Phoenix"),
    _place("NM", "New Mexico", "Santa Fe"),
    _place("OK", "Oklahoma", "Oklahoma City"),
    _place("TX", "Texas", "Austin"),
)

REGIONS: Dict[str, RegionOption] = {
    "northeast": RegionOption("northeast", "Northeast", NORTHEAST_STATES),
    "southeast": RegionOption("southeast", "Southeast", SOUTHEAST_STATES),
    "midwest": RegionOption("midwest", "Midwest", MIDWEST_STATES),
    "west": RegionOption("west", "West", WEST_STATES),
    "southwest": RegionOption("southwest", "Southwest", SOUTHWEST_STATES),
}

ALL_STATES: Tuple[Place, ...] = tuple(
    sorted((p for r in REGIONS.values() for p in r.places), key=lambda p: p.name)
)


def get_region(region_id: str) -> RegionOption:
    try:
        return REGIONS[(region_id or "").strip().lower()]
    except KeyError:
        raise UnknownRegionError(region_id) from None


def get_places_by_region(region_id: str) -> Tuple[Place, ...]:
    """Places for a region in catalog order; empty for unknown regions."""
    try:
        return get_region(region_id).places
    except UnknownRegionError:
        return ()


def get_available_regions() -> List[RegionOption]:
    return [r for r in REGIONS.values() if r.available]


def place_by_id(places: Iterable[Place], place_id: str) -> Optional[Place]:
    for place in places:
        if place.id == place_id:
            return place
    return None


def build_capital_index(places: Iterable[Place]) -> Dict[str, Place]:
    """Map each capital name to its owning place.

    Capitals-mode answers are capital names, so they must resolve to exactly
    one place. Raises DuplicateCapitalError if two places share a capital.
    """
    index: Dict[str, Place] = {}
    for place in places:
        owner = index.get(place.capital)
        if owner is not None and owner.id != place.id:
            raise DuplicateCapitalError(
                f"Capital '{place.capital}' is shared by {owner.name} and {place.name}"
            )
        index[place.capital] = place
    return index
