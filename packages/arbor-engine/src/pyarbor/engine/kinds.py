from typing import Dict, List, Type

from pyarbor.interfaces.exceptions import ConfigurationError
from pyarbor.interfaces.models import NestedNode

from .inheritance import nested_attribute_for


@nested_attribute_for(
    "compute_profile_id",
    "environment_id",
    "domain_id",
    "puppet_proxy_id",
    "puppet_ca_proxy_id",
    "operatingsystem_id",
    "architecture_id",
    "medium_id",
    "ptable_id",
    "subnet_id",
    "realm_id",
)
class Hostgroup(NestedNode):
    type_tag = "hostgroup"


class Location(NestedNode):
    type_tag = "location"


class Organization(NestedNode):
    type_tag = "organization"


KINDS: Dict[str, Type[NestedNode]] = {k.type_tag: k for k in (Hostgroup, Location, Organization)}


def get_kind(type_tag: str) -> Type[NestedNode]:
    try:
        return KINDS[type_tag.lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown node kind '{type_tag}'. Available: {', '.join(KINDS)}") from None


def relation_targets() -> List[str]:
    return sorted({f.target for kind in KINDS.values() for f in kind.inherited_fields if f.target})
