import logging
from typing import Any, List, Optional

from azure.identity import DefaultAzureCredential
from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder
from msgraph.generated.models.o_data_errors.o_data_error import ODataError
from msgraph.generated.service_principals.service_principals_request_builder import (
    ServicePrincipalsRequestBuilder,
)
from msgraph.generated.users.users_request_builder import UsersRequestBuilder
from msgraph.graph_service_client import GraphServiceClient

from ..exceptions import DirectoryLookupError
from .identity_resolver import is_object_id

logger = logging.getLogger(__name__)

GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter, doubling single quotes."""
    return "'" + value.replace("'", "''") + "'"


class AADDirectoryService:
    """
    Directory lookups against Microsoft Graph.

    Every lookup is a single exact-equality ``$filter`` query that returns the
    object ids of all matching objects. Authentication uses
    DefaultAzureCredential unless a credential or client is injected.
    """

    def __init__(
        self,
        credential: Optional[Any] = None,
        client: Optional[GraphServiceClient] = None,
    ):
        if client is None:
            credential = credential or DefaultAzureCredential()
            client = GraphServiceClient(credentials=credential, scopes=GRAPH_SCOPES)
        self.client = client

    async def _query(
        self,
        collection: Any,
        query_params: Any,
        description: str,
    ) -> List[str]:
        """
        Run a filtered collection query and collect ids across pages.

        Each page is requested once. Any failure, throttling included, ends
        the lookup with a DirectoryLookupError.
        """
        request_config = RequestConfiguration(query_parameters=query_params)
        ids: List[str] = []
        try:
            page = await collection.get(request_configuration=request_config)
            while page is not None:
                for item in page.value or []:
                    if item.id:
                        ids.append(item.id)
                if not page.odata_next_link:
                    break
                page = await collection.with_url(page.odata_next_link).get()
        except ODataError as e:
            error = getattr(e, "error", None)
            detail = getattr(error, "message", None) or str(e)
            status_code = getattr(e, "response_status_code", None)
            logger.warning(f"Graph query {description} failed with status {status_code}")
            raise DirectoryLookupError(
                f"Graph query failed: {detail}", query=description, cause=e
            ) from e
        except Exception as e:
            raise DirectoryLookupError(
                f"Graph query failed: {e}", query=description, cause=e
            ) from e

        logger.debug(f"Graph query {description} matched {len(ids)} objects")
        return ids

    async def _find_users(self, attribute: str, value: str) -> List[str]:
        expression = f"{attribute} eq {odata_quote(value)}"
        query_params = UsersRequestBuilder.UsersRequestBuilderGetQueryParameters(
            select=["id"], filter=expression
        )
        return await self._query(self.client.users, query_params, f"users?{expression}")

    async def _find_service_principals(self, attribute: str, value: str) -> List[str]:
        expression = f"{attribute} eq {odata_quote(value)}"
        query_params = ServicePrincipalsRequestBuilder.ServicePrincipalsRequestBuilderGetQueryParameters(
            select=["id"], filter=expression
        )
        return await self._query(
            self.client.service_principals,
            query_params,
            f"servicePrincipals?{expression}",
        )

    async def find_users_by_principal_name(self, principal_name: str) -> List[str]:
        return await self._find_users("userPrincipalName", principal_name)

    async def find_users_by_display_name(self, display_name: str) -> List[str]:
        return await self._find_users("displayName", display_name)

    async def find_service_principals_by_app_id(self, app_id: str) -> List[str]:
        # Graph rejects a non-GUID appId literal with a 400
        if not is_object_id(app_id):
            return []
        return await self._find_service_principals("appId", app_id)

    async def find_service_principals_by_display_name(
        self, display_name: str
    ) -> List[str]:
        return await self._find_service_principals("displayName", display_name)

    async def find_groups_by_display_name(self, display_name: str) -> List[str]:
        expression = f"displayName eq {odata_quote(display_name)}"
        query_params = GroupsRequestBuilder.GroupsRequestBuilderGetQueryParameters(
            select=["id"], filter=expression
        )
        return await self._query(self.client.groups, query_params, f"groups?{expression}")
