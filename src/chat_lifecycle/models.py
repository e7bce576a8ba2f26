"""
Catalog of selectable completion models.

The catalog drives two decisions on the client side: whether search mode may be
used with the selected model, and which generation parameters the completion
endpoint should apply ('modelConfig' in the request body).
"""

from pydantic import BaseModel


class ModelInfo(BaseModel):
    value: str
    label: str
    search: bool = False
    token_parameter: str = "max_tokens"
    supports_custom_temperature: bool = True
    default_temperature: float = 0.7

    def model_config_payload(self) -> dict[str, object]:
        return {
            "tokenParameter": self.token_parameter,
            "supportsCustomTemperature": self.supports_custom_temperature,
            "defaultTemperature": self.default_temperature,
        }


DEFAULT_MODELS: list[ModelInfo] = [
    ModelInfo(value="gpt-3.5-turbo", label="GPT-3.5 Turbo"),
    ModelInfo(value="gpt-4", label="GPT-4"),
    ModelInfo(value="gpt-4o", label="GPT-4o", search=True),
    ModelInfo(value="gpt-4o-mini", label="GPT-4o mini", search=True),
    ModelInfo(
        value="o3-mini",
        label="o3-mini",
        token_parameter="max_completion_tokens",
        supports_custom_temperature=False,
        default_temperature=1.0,
    ),
]

_BY_VALUE = {model.value: model for model in DEFAULT_MODELS}


def get_model_info(model: str) -> ModelInfo | None:
    return _BY_VALUE.get(model)


def is_known_model(model: str) -> bool:
    return model in _BY_VALUE


def supports_search(model: str) -> bool:
    info = get_model_info(model)
    return bool(info and info.search)


def default_model_config() -> dict[str, object]:
    return ModelInfo(value="", label="").model_config_payload()
