"""Post-load wiring of navigation references and collections.

The mapper runs once over fully loaded sets. Pass one resolves every scalar
foreign key to the referenced entity. Pass two fills navigation collections:
a plain collection holds the target rows whose foreign key points back at the
owner (link rows included), and a collection declared ``through`` a link entity
holds the far-side entities found through the link's other foreign key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from miniorm.domain.errors import MappingConfigurationError, ReferentialIntegrityError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from miniorm.domain.db_set import DbSet
    from miniorm.domain.metadata.schema import EntitySchema, ForeignKey, NavigationCollection

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OneToMany:
    owner_key: str
    target: EntitySchema
    back_reference: ForeignKey


@dataclass(frozen=True, slots=True)
class ManyToMany:
    owner_key: str
    link: EntitySchema
    back_reference: ForeignKey
    far_reference: ForeignKey
    far: EntitySchema


def _index_by_key(entities: Iterable[Any], key_field: str) -> dict[Any, Any]:
    """Map key values to entities; the first entity in iteration order wins."""
    index: dict[Any, Any] = {}
    for entity in entities:
        index.setdefault(getattr(entity, key_field), entity)
    return index


def _group_by(entities: Iterable[Any], field_name: str) -> dict[Any, list[Any]]:
    groups: dict[Any, list[Any]] = {}
    for entity in entities:
        groups.setdefault(getattr(entity, field_name), []).append(entity)
    return groups


class RelationMapper:
    """Wires navigation fields across the sets of one context."""

    def __init__(self, sets: Mapping[type, DbSet[Any]]) -> None:
        self._sets = sets

    def map(self) -> None:
        for db_set in self._sets.values():
            for foreign_key in db_set.schema.foreign_keys:
                self._map_reference(db_set, foreign_key)
        for db_set in self._sets.values():
            for navigation in db_set.schema.navigation_collections:
                self._map_collection(db_set, navigation)

    def resolve(
        self, owner: EntitySchema, navigation: NavigationCollection
    ) -> OneToMany | ManyToMany:
        """Work out how ``owner.<navigation>`` is expressed in the loaded sets.

        Without ``through`` the collection holds the target rows pointing back at
        the owner, which for a link entity are the link rows themselves. With
        ``through`` it holds the far-side entities reached through the link.
        """

        target = self._schema_of(navigation.target, owner, navigation.field)
        if not target.key_fields:
            raise MappingConfigurationError(
                f"{owner.name}.{navigation.field}: {target.name} declares no key field"
            )
        owner_key = self._owner_key(owner, navigation)
        if navigation.through is None:
            back = self._back_reference(owner, navigation, target, target.foreign_keys)
            return OneToMany(owner_key=owner_key, target=target, back_reference=back)
        if not target.is_link_entity:
            raise MappingConfigurationError(
                f"{owner.name}.{navigation.field}: through={target.name} is not a link "
                f"entity (it needs two or more key fields)"
            )

        keyed = [fk for fk in target.foreign_keys if fk.field in target.key_fields]
        back = self._back_reference(owner, navigation, target, keyed)
        others = [fk for fk in keyed if fk is not back]
        if len(others) > 1:
            others = [fk for fk in others if fk.target is navigation.element_type]
        if len(others) != 1:
            raise MappingConfigurationError(
                f"{owner.name}.{navigation.field}: cannot identify the far-side key of link "
                f"entity {target.name} ({len(others)} candidates)"
            )
        far_reference = others[0]
        if navigation.element_type is not far_reference.target:
            raise MappingConfigurationError(
                f"{owner.name}.{navigation.field}: {target.name} leads to "
                f"{far_reference.target.__name__}, not {navigation.element_type.__name__}"
            )
        far = self._schema_of(far_reference.target, owner, navigation.field)
        return ManyToMany(
            owner_key=owner_key,
            link=target,
            back_reference=back,
            far_reference=far_reference,
            far=far,
        )

    def _schema_of(self, entity_type: type, owner: EntitySchema, field_name: str) -> EntitySchema:
        db_set = self._sets.get(entity_type)
        if db_set is None:
            raise MappingConfigurationError(
                f"{owner.name}.{field_name} refers to {entity_type.__name__}, "
                f"which has no entity set in this context"
            )
        return db_set.schema

    @staticmethod
    def _owner_key(owner: EntitySchema, navigation: NavigationCollection) -> str:
        if len(owner.key_fields) != 1:
            raise MappingConfigurationError(
                f"{owner.name}.{navigation.field}: the owning type needs exactly one key field"
            )
        return owner.key_fields[0]

    @staticmethod
    def _back_reference(
        owner: EntitySchema,
        navigation: NavigationCollection,
        target: EntitySchema,
        candidates: Iterable[ForeignKey],
    ) -> ForeignKey:
        matches = [fk for fk in candidates if fk.target is owner.entity_type]
        if navigation.back_reference is not None:
            matches = [fk for fk in matches if fk.field == navigation.back_reference]
        if len(matches) != 1:
            problem = "no" if not matches else "ambiguous"
            raise MappingConfigurationError(
                f"{owner.name}.{navigation.field}: {problem} foreign key on {target.name} "
                f"points back at {owner.name}"
            )
        return matches[0]

    def _map_reference(self, db_set: DbSet[Any], foreign_key: ForeignKey) -> None:
        owner = db_set.schema
        target = self._schema_of(foreign_key.target, owner, foreign_key.navigation)
        target_key = target.primary_key
        index = _index_by_key(self._sets[foreign_key.target], target_key)
        for entity in db_set:
            value = getattr(entity, foreign_key.field)
            if value is None:
                setattr(entity, foreign_key.navigation, None)
                continue
            try:
                related = index[value]
            except KeyError:
                raise ReferentialIntegrityError(
                    f"{owner.table_name}.{foreign_key.field}={value!r} has no matching "
                    f"{target.table_name}.{target_key}"
                ) from None
            setattr(entity, foreign_key.navigation, related)
        log.debug(
            "Mapped %s.%s -> %s for %d entities",
            owner.name,
            foreign_key.navigation,
            target.name,
            len(db_set),
        )

    def _map_collection(self, db_set: DbSet[Any], navigation: NavigationCollection) -> None:
        relation = self.resolve(db_set.schema, navigation)
        if isinstance(relation, OneToMany):
            groups = _group_by(
                self._sets[relation.target.entity_type], relation.back_reference.field
            )
            for entity in db_set:
                children = groups.get(getattr(entity, relation.owner_key), ())
                setattr(entity, navigation.field, navigation.container(children))
            return

        links = _group_by(self._sets[relation.link.entity_type], relation.back_reference.field)
        far_key = relation.far.primary_key
        far_index = _index_by_key(self._sets[relation.far.entity_type], far_key)
        for entity in db_set:
            related: list[Any] = []
            for link in links.get(getattr(entity, relation.owner_key), ()):
                value = getattr(link, relation.far_reference.field)
                try:
                    related.append(far_index[value])
                except KeyError:
                    raise ReferentialIntegrityError(
                        f"{relation.link.table_name}.{relation.far_reference.field}={value!r} "
                        f"has no matching {relation.far.table_name}.{far_key}"
                    ) from None
            setattr(entity, navigation.field, navigation.container(related))
        log.debug(
            "Mapped %s.%s through %s",
            db_set.schema.name,
            navigation.field,
            relation.link.name,
        )
