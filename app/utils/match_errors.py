class MatchingError(Exception):
    """Base error for the matching pipeline."""


class ItemNotFoundError(MatchingError):
    def __init__(self, item_id):
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id
