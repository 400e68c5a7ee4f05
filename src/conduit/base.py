class ConduitField:
    """
    Metadata container for Conduit-specific column configuration.

    This class marks primary key, unique and indexed columns. It is typically used
    within `typing.Annotated`:

        id: Annotated[int | None, ConduitField(primary_key=True)] = None
    """

    def __init__(
        self,
        primary_key: bool = False,
        unique: bool = False,
        index: bool = False,
    ):
        """
        Initialize Conduit field metadata.

        Args:
            primary_key: Whether this field is (part of) the primary key. Several
                fields may set it to form a composite key.
            unique: Whether the column carries a uniqueness constraint.
            index: Whether the column is indexed.
        """
        self.primary_key = primary_key
        self.unique = unique
        self.index = index

    def __repr__(self) -> str:
        return (
            f"ConduitField(primary_key={self.primary_key}, "
            f"unique={self.unique}, index={self.index})"
        )
