"""
Configuration Package - Models and Loaders.

This package handles all configuration aspects of the enrichment funnel:
    - Pydantic models for type-safe configuration
    - YAML loader with validation
    - Support for configuration profiles
    - Environment variable overrides for deployment settings

Configuration Structure:
    - PipelineConfig: Root configuration object
    - GlobalConfig: Cancellation, staleness and retry settings
    - ProxyConfig: Provider proxy server connection
    - Per-stage configs: window sizes, pacing, thresholds
    - AnalyticsConfig: Unit rates for cost estimates
"""
