"""模型配置。

集中维护 DeepSeek 已知模型的默认参数以及默认白名单，
Settings 中的 allowed_models 可以覆盖这里的白名单。"""

from dataclasses import dataclass
from typing import Dict, Tuple

from deepseek_core.domain.constants import DEFAULT_ALLOWED_MODELS, DeepSeekModels


@dataclass(frozen=True)
class ModelConfig:
    """单个模型的默认参数。"""

    model_id: str
    max_tokens: int
    default_temperature: float


@dataclass(frozen=True)
class ProviderConfig:
    """Provider 的模型表与默认白名单。"""

    name: str
    models: Dict[str, ModelConfig]
    allowed_models: Tuple[str, ...]


DEEPSEEK_CONFIG = ProviderConfig(
    name="deepseek",
    models={
        DeepSeekModels.CHAT: ModelConfig(
            model_id=DeepSeekModels.CHAT,
            max_tokens=4096,
            default_temperature=0.7,
        ),
        DeepSeekModels.CODER: ModelConfig(
            model_id=DeepSeekModels.CODER,
            max_tokens=4096,
            default_temperature=0.7,
        ),
        DeepSeekModels.REASONER: ModelConfig(
            model_id=DeepSeekModels.REASONER,
            max_tokens=4096,
            default_temperature=0.7,
        ),
    },
    allowed_models=DEFAULT_ALLOWED_MODELS,
)
