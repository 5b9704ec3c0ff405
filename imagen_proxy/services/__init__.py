from .vertex_client import GoogleBearerAuth, create_google_auth_client
from .translator import (
    contains_chinese,
    MyMemoryTranslation,
    LibreTranslation,
    IdentityTranslation,
    PromptTranslator,
)
from .imagen import (
    build_predict_body,
    predictions_to_images,
    generate_images,
    list_publisher_models,
)

__all__ = [
    "GoogleBearerAuth",
    "create_google_auth_client",
    "contains_chinese",
    "MyMemoryTranslation",
    "LibreTranslation",
    "IdentityTranslation",
    "PromptTranslator",
    "build_predict_body",
    "predictions_to_images",
    "generate_images",
    "list_publisher_models",
]
