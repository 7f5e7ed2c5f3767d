"""
Category management: named, colored tags used to classify files.
"""

from __future__ import annotations

import logging
from typing import Optional

from filedepot.db import CategoryRecord, DbClient
from filedepot.results import Err, Notice

logger = logging.getLogger(__name__)

PRESET_COLORS = (
    "#6366f1",
    "#8b5cf6",
    "#ec4899",
    "#ef4444",
    "#f97316",
    "#eab308",
    "#22c55e",
    "#06b6d4",
)
DEFAULT_COLOR = PRESET_COLORS[0]

DUPLICATE_NAME_MESSAGE = "A category with this name already exists"


class CategoryManager:
    def __init__(self, db: DbClient):
        self.db = db
        self.categories: list[CategoryRecord] = []

    def fetch(self) -> Optional[Notice]:
        result = self.db.list_categories()
        if isinstance(result, Err):
            logger.error("Error fetching categories: %s", result.error.message)
            return Notice.error("Could not load categories")
        self.categories = result.data
        return None

    def find(self, category_id: str) -> Optional[CategoryRecord]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    @staticmethod
    def validate(name: str, color: str) -> Optional[Notice]:
        if not (name or "").strip():
            return Notice.error("Please enter a category name", kind="validation")
        if color not in PRESET_COLORS:
            return Notice.error("Please pick one of the preset colors", kind="validation")
        return None

    def create(self, name: str, color: str = DEFAULT_COLOR) -> Notice:
        invalid = self.validate(name, color)
        if invalid:
            return invalid
        result = self.db.insert_category(name.strip(), color)
        if isinstance(result, Err):
            if result.error.is_conflict:
                return Notice.error(DUPLICATE_NAME_MESSAGE, kind="conflict")
            logger.error("Error creating category: %s", result.error.message)
            return Notice.error("Could not create category")
        self.fetch()
        return Notice.success("Category created")

    def update(self, category_id: str, name: str, color: str) -> Notice:
        invalid = self.validate(name, color)
        if invalid:
            return invalid
        result = self.db.update_category(category_id, name.strip(), color)
        if isinstance(result, Err):
            if result.error.is_conflict:
                return Notice.error(DUPLICATE_NAME_MESSAGE, kind="conflict")
            if result.error.is_not_found:
                return Notice.error("Category not found", kind="not_found")
            logger.error("Error updating category: %s", result.error.message)
            return Notice.error("Could not update category")
        self.fetch()
        return Notice.success("Category updated")

    def delete(self, category_id: str, *, confirmed: bool = False) -> Notice:
        if not confirmed:
            category = self.find(category_id)
            label = category.name if category else "this category"
            return Notice.info(f'Confirm deletion of "{label}"', kind="confirm")
        result = self.db.delete_category(category_id)
        if isinstance(result, Err):
            if result.error.is_not_found:
                return Notice.error("Category not found", kind="not_found")
            logger.error("Error deleting category: %s", result.error.message)
            return Notice.error("Could not delete category")
        self.fetch()
        return Notice.success("Category deleted")
