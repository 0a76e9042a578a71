from backoffice.gateways.base import SchoolGateway
from backoffice.gateways.sql import SqlGateway
from backoffice.gateways.http import ApiGateway

__all__ = ["SchoolGateway", "SqlGateway", "ApiGateway"]
