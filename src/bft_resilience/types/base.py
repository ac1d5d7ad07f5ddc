"""Base pydantic models shared by configuration types."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    A base model that accepts camelCase keys.

    Cluster config files are usually written in camelCase (`votingPower`,
    `executeLayerHttpRpcPort`). Fields are declared in snake_case and both
    spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        arbitrary_types_allowed=True,
    )


class FrozenModel(CamelModel):
    """
    An immutable config model.

    Unknown keys are ignored so one config file can also carry settings for
    tooling outside this harness (explorers, faucets, load generators).
    """

    model_config = CamelModel.model_config | {
        "extra": "ignore",
        "frozen": True,
    }
