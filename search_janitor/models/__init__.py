from search_janitor.models.version_deletion import VersionDeletion  # noqa: F401
