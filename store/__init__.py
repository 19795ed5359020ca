"""인메모리 저장소 (TTL 캐시)."""
