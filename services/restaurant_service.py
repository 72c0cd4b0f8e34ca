"""Restaurant registration, opening hours and activation."""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models_sqlalchemy import Restaurant
from db.repositories import RestaurantRepository
from domain.errors import NotFound, PersistenceError
from domain.models import RestaurantCreate, RestaurantUpdate
from services.availability_cache import AvailabilityCache


logger = logging.getLogger(__name__)


class RestaurantService:
    """Service for managing restaurants."""

    def __init__(self, db_session: Session, cache: Optional[AvailabilityCache] = None):
        """
        Initialize the restaurant service.

        Args:
            db_session: SQLAlchemy database session
            cache: Availability cache to clear when opening hours change
        """
        self.db = db_session
        self.cache = cache
        self.restaurants = RestaurantRepository(db_session)

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(operation) from e

    def create(self, data: RestaurantCreate) -> Restaurant:
        restaurant = Restaurant(**data.model_dump())
        self.restaurants.add(restaurant)
        self._commit("create restaurant")
        self.db.refresh(restaurant)
        logger.info(f"Created restaurant {restaurant.id} ({restaurant.name})")
        return restaurant

    def get(self, restaurant_id: int) -> Restaurant:
        """
        Get a restaurant by ID.

        Raises:
            NotFound: If the restaurant does not exist
        """
        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)
        return restaurant

    def list(self, active_only: bool = False) -> List[Restaurant]:
        return self.restaurants.list(active_only=active_only)

    def update(self, restaurant_id: int, data: RestaurantUpdate) -> Restaurant:
        restaurant = self.get(restaurant_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        hours_changed = any(
            k in changes and changes[k] != getattr(restaurant, k)
            for k in ("opening_time", "closing_time")
        )

        for key, value in changes.items():
            setattr(restaurant, key, value)

        self._commit("update restaurant")
        self.db.refresh(restaurant)

        if hours_changed:
            self._invalidate(restaurant_id)
        logger.info(f"Updated restaurant {restaurant_id}: {sorted(changes)}")
        return restaurant

    def set_active(self, restaurant_id: int, active: bool) -> Restaurant:
        restaurant = self.get(restaurant_id)
        restaurant.is_active = active
        self._commit("activate restaurant" if active else "deactivate restaurant")
        self.db.refresh(restaurant)
        logger.info(f"Restaurant {restaurant_id} {'activated' if active else 'deactivated'}")
        return restaurant

    def activate(self, restaurant_id: int) -> Restaurant:
        return self.set_active(restaurant_id, True)

    def deactivate(self, restaurant_id: int) -> Restaurant:
        return self.set_active(restaurant_id, False)

    def delete(self, restaurant_id: int) -> None:
        """Delete a restaurant together with its tables."""
        restaurant = self.get(restaurant_id)
        self.db.delete(restaurant)
        self._commit("delete restaurant")
        self._invalidate(restaurant_id)
        logger.info(f"Deleted restaurant {restaurant_id}")

    def _invalidate(self, restaurant_id: int) -> None:
        if self.cache is None:
            return
        try:
            self.cache.invalidate_restaurant(restaurant_id)
        except Exception:
            logger.warning(f"Availability cache invalidation failed for restaurant {restaurant_id}", exc_info=True)
