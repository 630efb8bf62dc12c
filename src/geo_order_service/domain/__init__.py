"""Domain models, DTOs and enums."""
