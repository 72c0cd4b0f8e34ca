"""
Table catalog: the bookable tables of each restaurant.

Answers which tables can seat a party and which one fits best. Best fit
means the smallest capacity that still seats the party; ties go to the
lower table number.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.models_sqlalchemy import Restaurant, Table
from db.repositories import RestaurantRepository, TableRepository
from domain.errors import DuplicateTableNumber, NotFound, PersistenceError
from domain.models import TableCreate, TableUpdate
from services.availability_cache import AvailabilityCache


logger = logging.getLogger(__name__)


class TableCatalog:
    """Service for managing and selecting restaurant tables."""

    def __init__(self, db_session: Session, cache: Optional[AvailabilityCache] = None):
        """
        Initialize the table catalog.

        Args:
            db_session: SQLAlchemy database session
            cache: Availability cache to clear when the set of tables changes
        """
        self.db = db_session
        self.cache = cache
        self.tables = TableRepository(db_session)
        self.restaurants = RestaurantRepository(db_session)

    # ==================== Selection ====================

    def find_eligible(self, restaurant_id: int, party_size: int) -> List[Table]:
        """
        Active tables that can seat the party, in best-fit order.

        Args:
            restaurant_id: Restaurant to search
            party_size: Number of guests

        Returns:
            Tables with min_capacity <= party_size <= capacity, smallest capacity first,
            equal capacities ordered by table number as text
        """
        return self.tables.find_eligible_tables(restaurant_id, party_size)

    def find_optimal(self, restaurant_id: int, party_size: int) -> Optional[Table]:
        """
        The best-fit table, or None if no table can seat the party.

        Among equally sized tables the lowest table number wins, compared as
        text; zero padding ("T02") gives numeric order.
        """
        eligible = self.find_eligible(restaurant_id, party_size)
        return eligible[0] if eligible else None

    def suggest_alternatives(self, restaurant_id: int, party_size: int, limit: int = 5) -> List[Table]:
        """
        Tables worth mentioning to a guest when nothing fits exactly.

        Looser than eligibility: any active table with at least
        party_size - 2 seats, closest capacity first. Some suggestions
        may not actually seat the party.
        """
        candidates = self.tables.find_with_min_capacity(restaurant_id, max(1, party_size - 2))
        candidates.sort(key=lambda t: (abs(t.capacity - party_size), t.capacity, t.table_number))
        return candidates[:limit]

    # ==================== Management ====================

    def _get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)
        return restaurant

    def get(self, table_id: int) -> Table:
        table = self.tables.get(table_id)
        if table is None:
            raise NotFound("Table", table_id)
        return table

    def list_for_restaurant(self, restaurant_id: int, include_inactive: bool = False) -> List[Table]:
        self._get_restaurant(restaurant_id)
        return self.tables.list_for_restaurant(restaurant_id, include_inactive=include_inactive)

    def create(self, restaurant_id: int, data: TableCreate) -> Table:
        """
        Add a table to a restaurant.

        Raises:
            NotFound: If the restaurant does not exist
            DuplicateTableNumber: If the number is already used in the restaurant
        """
        self._get_restaurant(restaurant_id)
        if self.tables.find_by_number(restaurant_id, data.table_number) is not None:
            raise DuplicateTableNumber(data.table_number)

        table = Table(restaurant_id=restaurant_id, **data.model_dump())
        self.tables.add(table)
        self._commit("create table")
        self.db.refresh(table)

        self.update_table_count(restaurant_id)
        logger.info(f"Created table {table.table_number} ({table.min_capacity}-{table.capacity} seats) in restaurant {restaurant_id}")
        return table

    def update(self, table_id: int, data: TableUpdate) -> Table:
        """
        Change a table's number, capacity range, location or active flag.

        Raises:
            NotFound: If the table does not exist
            DuplicateTableNumber: If the new number is already used
            ValueError: If the resulting min capacity exceeds capacity
        """
        table = self.get(table_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        new_number = changes.get("table_number")
        if new_number and new_number != table.table_number:
            if self.tables.find_by_number(table.restaurant_id, new_number) is not None:
                raise DuplicateTableNumber(new_number)

        capacity = changes.get("capacity", table.capacity)
        min_capacity = changes.get("min_capacity", table.min_capacity)
        if min_capacity > capacity:
            raise ValueError("Minimum capacity cannot exceed maximum capacity")

        for key, value in changes.items():
            setattr(table, key, value)

        self._commit("update table")
        self.db.refresh(table)

        self.update_table_count(table.restaurant_id)
        return table

    def deactivate(self, table_id: int) -> Table:
        return self.update(table_id, TableUpdate(is_active=False))

    def delete(self, table_id: int) -> None:
        table = self.get(table_id)
        restaurant_id = table.restaurant_id
        self.db.delete(table)
        self._commit("delete table")
        self.update_table_count(restaurant_id)

    def update_table_count(self, restaurant_id: int) -> int:
        """Recompute the restaurant's derived table count from its active tables."""
        restaurant = self._get_restaurant(restaurant_id)
        restaurant.total_tables = self.tables.count_active(restaurant_id)
        self._commit("update table count")
        self._invalidate(restaurant_id)
        return restaurant.total_tables

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to {operation}: {e.orig}")
            raise PersistenceError(operation) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(operation) from e

    def _invalidate(self, restaurant_id: int) -> None:
        if self.cache is None:
            return
        try:
            self.cache.invalidate_restaurant(restaurant_id)
        except Exception:
            logger.warning(f"Availability cache invalidation failed for restaurant {restaurant_id}", exc_info=True)
