from evoi.models.schemas import (  # noqa: F401
    BusinessInputsRequest,
    CostsRequest,
    DesignRequest,
    EVPIRequest,
    EVPIResponse,
    EVSIRequest,
    EVSIResponse,
    NetValueRequest,
    NetValueResponse,
    PriorRequest,
    ThresholdRequest,
)
