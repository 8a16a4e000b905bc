"""
BaseRepository - shared persistence plumbing for the engagement repositories

Repositories stage changes and flush them so generated ids are available,
but the calling service decides when a unit of work ends.
"""

from typing import TypeVar, Generic, Optional, Type
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

logger = logging.getLogger(__name__)

ModelT = TypeVar('ModelT')


class BaseRepository(Generic[ModelT]):
    """Owns the session and the mapped class; subclasses add domain queries"""

    def __init__(self, session: Session, model_class: Type[ModelT]):
        self.session = session
        self.model_class = model_class

    @property
    def _entity_name(self) -> str:
        return self.model_class.__name__

    def create(self, **fields) -> ModelT:
        """
        Add a new row and flush it.

        Raises:
            SQLAlchemyError: after rolling the session back
        """
        entity = self.model_class(**fields)
        self.session.add(entity)
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Could not insert {self._entity_name}: {e}")
            self.session.rollback()
            raise
        logger.debug(f"Inserted {self._entity_name} id={entity.id}")
        return entity

    def get_by_id(self, entity_id: int) -> Optional[ModelT]:
        try:
            return self.session.get(self.model_class, entity_id)
        except SQLAlchemyError as e:
            logger.error(f"Lookup of {self._entity_name} {entity_id} failed: {e}")
            return None

    def update(self, entity: ModelT, **changes) -> ModelT:
        """Set the given attributes (unknown names are ignored) and flush"""
        for name, value in changes.items():
            if hasattr(entity, name):
                setattr(entity, name, value)
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Could not update {self._entity_name} id={entity.id}: {e}")
            self.session.rollback()
            raise
        return entity

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Commit failed, rolling back: {e}")
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    def flush(self) -> None:
        self.session.flush()
