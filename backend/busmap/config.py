from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    feed_url: str = "https://pilet.ee/viipe/ajax/gotlandpublicrealtime"
    feed_org_id: str = "968"
    feed_timeout_seconds: float = 15.0
    feed_max_retries: int = 3
    poll_interval_seconds: int = 8
    eviction_grace_seconds: int = 20
    stale_after_seconds: int = 120
    fuzzy_match_threshold: float = 0.74
    # "pairwise" scores every stop name, "indexed" narrows candidates by token first
    name_resolver: str = "pairwise"
    osrm_base_url: str = "https://router.project-osrm.org"
    osrm_profile: str = "driving"
    osrm_max_coords: int = 80
    osrm_timeout_seconds: float = 10.0
    assets_base: str = "data"
    stops_asset: str = "stops.geojson"
    timezone: str = "America/Nuuk"
    schedule_refresh_hours: int = 6
    redis_url: str = ""
    # (min_lat, max_lat, min_lon, max_lon) of the Qatserisut depot
    depot_bounds: tuple[float, float, float, float] = (64.1795, 64.1825, -51.7200, -51.7130)

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
