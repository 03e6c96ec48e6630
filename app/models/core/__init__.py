from .mixins import TimestampMixin, utcnow


__all__ = [
    'TimestampMixin',
    'utcnow',
]
