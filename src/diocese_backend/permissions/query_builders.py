from typing import Any, Type
from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from diocese_backend.model.organization import Diocese, TestingCenter
from diocese_backend.permissions.principal import AccessConstraint


class ConstraintQueryBuilder:
    """Applies an AccessConstraint to ORM queries as bound parameters"""

    @classmethod
    def _match(cls, column, value):
        # a required filter without an organization matches nothing
        if value is None:
            return false()
        return column == value

    @classmethod
    def filter_by_constraint(cls, query: Query, entity: Type[Any], constraint: AccessConstraint) -> Query:
        """Filter query to the rows the constraint permits"""

        if not constraint.has_constraints:
            return query

        if entity.__tablename__ == Diocese.__tablename__:
            if constraint.must_include_diocese_filter:
                query = query.filter(cls._match(entity.id, constraint.diocese_id))
            return query

        if entity.__tablename__ == TestingCenter.__tablename__:
            if constraint.must_include_diocese_filter:
                query = query.filter(cls._match(entity.diocese_id, constraint.diocese_id))
            if constraint.must_include_testing_center_filter:
                query = query.filter(cls._match(entity.id, constraint.testing_center_id))
            return query

        table_keys = entity.__table__.columns.keys()

        if constraint.must_include_diocese_filter and "diocese_id" in table_keys:
            query = query.filter(cls._match(entity.diocese_id, constraint.diocese_id))

        if constraint.must_include_testing_center_filter and "testing_center_id" in table_keys:
            query = query.filter(cls._match(entity.testing_center_id, constraint.testing_center_id))

        return query

    @classmethod
    def build_scoped_query(cls, entity: Type[Any], constraint: AccessConstraint, db: Session) -> Query:
        return cls.filter_by_constraint(db.query(entity), entity, constraint)


def scope_query(query: Query, entity: Type[Any], constraint: AccessConstraint) -> Query:
    return ConstraintQueryBuilder.filter_by_constraint(query, entity, constraint)
