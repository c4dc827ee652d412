"""Remote source client for the piece graph.

The sweep only needs four things from the remote store:

- ``query_page``: one page of ``(identifier, created_at)`` records with
  ``lower < created < upper``, ascending by creation time
- ``get_piece_uri`` / ``get_piece_url``: resolve a physical file to its piece
- ``reinsert_piece``: the idempotent "mark" write

:class:`SparqlPieceSource` implements them against a SPARQL 1.1 endpoint
(``application/sparql-results+json``) using httpx.

Example:
    with SparqlClient("http://database:8890/sparql") as client:
        source = SparqlPieceSource(client)
        records = source.query_page(PageRequest(start, cutoff, 100))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import httpx

from signature_sweep.lib.errors import FetchError
from signature_sweep.lib.resilience import RetryConfig, retry_operation
from signature_sweep.lib.time_utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

__all__ = [
    "RemoteRecord",
    "PageRequest",
    "RemoteSource",
    "SparqlClient",
    "SparqlPieceSource",
    "sparql_escape_uri",
    "sparql_escape_datetime",
]

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
SPARQL_RESULTS_JSON = "application/sparql-results+json"
DEFAULT_GRAPH = "http://mu.semte.ch/graphs/organizations/kanselarij"


@dataclass(frozen=True)
class RemoteRecord:
    """One physical file of a piece, with the piece's creation time."""

    identifier: str
    created_at: datetime


@dataclass(frozen=True)
class PageRequest:
    """Bounds and size of one page; both bounds are exclusive."""

    lower_bound_exclusive: datetime
    upper_bound_exclusive: datetime
    page_size: int


class RemoteSource(Protocol):
    def query_page(self, request: PageRequest) -> List[RemoteRecord]:
        ...

    def get_piece_uri(self, identifier: str) -> Optional[str]:
        ...

    def get_piece_url(self, identifier: str) -> Optional[str]:
        ...

    def reinsert_piece(self, piece_uri: str) -> None:
        ...


def sparql_escape_uri(uri: str) -> str:
    escaped = "".join(f"\\{ch}" if ch in '\\"<>' else ch for ch in uri)
    return f"<{escaped}>"


def sparql_escape_datetime(value: datetime) -> str:
    return f'"{format_timestamp(value)}"^^xsd:dateTime'


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


class SparqlClient:
    """Minimal SPARQL 1.1 protocol client (query + update over POST).

    ``sudo`` requests carry the ``mu-auth-sudo`` header so the authorization
    layer in front of the triplestore lets them through unfiltered.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 60.0,
        retry: Optional[RetryConfig] = None,
        sudo: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.retry = retry or RetryConfig.default()
        self.sudo = sudo
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def __enter__(self) -> "SparqlClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _headers(self, accept: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if accept:
            headers["Accept"] = accept
        if self.sudo:
            headers["mu-auth-sudo"] = "true"
        return headers

    def _post(self, form: Dict[str, str], accept: Optional[str], name: str) -> httpx.Response:
        def do_request() -> httpx.Response:
            response = self._client.post(
                self.endpoint, data=form, headers=self._headers(accept)
            )
            response.raise_for_status()
            return response

        try:
            return retry_operation(do_request, self.retry, name, retry_if=_is_transient)
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"SPARQL {name} rejected",
                endpoint=self.endpoint,
                status_code=exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                f"SPARQL {name} failed", endpoint=self.endpoint, cause=exc
            ) from exc

    def query(self, query_string: str) -> List[Dict[str, Any]]:
        """Run a SELECT query and return its result bindings."""
        logger.debug("SPARQL query:\n%s", query_string)
        response = self._post({"query": query_string}, SPARQL_RESULTS_JSON, "query")
        try:
            bindings = response.json()["results"]["bindings"]
        except (ValueError, KeyError, TypeError) as exc:
            raise FetchError(
                "Malformed SPARQL response", endpoint=self.endpoint, cause=exc
            ) from exc
        if not isinstance(bindings, list):
            raise FetchError("Malformed SPARQL response: bindings is not a list",
                             endpoint=self.endpoint)
        return bindings

    def update(self, update_string: str) -> None:
        logger.debug("SPARQL update:\n%s", update_string)
        self._post({"update": update_string}, None, "update")


PIECES_PAGE_QUERY = """PREFIX dossier: <https://data.vlaanderen.be/ns/dossier#>
PREFIX dct: <http://purl.org/dc/terms/>
PREFIX sign: <http://mu.semte.ch/vocabularies/ext/handtekenen/>
PREFIX prov: <http://www.w3.org/ns/prov#>
PREFIX nie: <http://www.semanticdesktop.org/ontologies/2007/01/19/nie#>
PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>

SELECT DISTINCT ?file ?created
WHERE {{
  GRAPH {graph} {{
    ?piece a dossier:Stuk ;
      prov:value ?virtualFile ;
      dct:created ?created .
    ?file nie:dataSource ?virtualFile ;
      dct:format ?format .
    FILTER EXISTS {{ ?serie dossier:Collectie.bestaatUit ?piece }}
    FILTER NOT EXISTS {{ ?piece sign:ongetekendStuk ?unsignedPiece }}
    FILTER (CONTAINS(LCASE(?format), "pdf"))
    FILTER (?created > {lower})
    FILTER (?created < {upper})
  }}
}}
ORDER BY ?created
LIMIT {limit}"""

PIECE_OF_FILE_QUERY = """PREFIX nie: <http://www.semanticdesktop.org/ontologies/2007/01/19/nie#>
PREFIX prov: <http://www.w3.org/ns/prov#>
PREFIX mu: <http://mu.semte.ch/vocabularies/core/>

SELECT DISTINCT ?piece ?id
WHERE {{
  GRAPH {graph} {{
    {file} nie:dataSource ?virtualFile .
    ?piece prov:value ?virtualFile .
    OPTIONAL {{ ?piece mu:uuid ?id }}
  }}
}}
LIMIT 1"""

REINSERT_PIECE_UPDATE = """PREFIX dossier: <https://data.omgeving.vlaanderen.be/ns/dossier#>

INSERT DATA {{
  GRAPH {graph} {{
    {piece} a dossier:Stuk .
  }}
}}"""


def _binding_value(binding: Dict[str, Any], name: str) -> Optional[str]:
    cell = binding.get(name)
    if cell is None:
        return None
    return cell["value"]


class SparqlPieceSource:
    """Remote source backed by the piece graph of the triplestore."""

    def __init__(
        self,
        client: SparqlClient,
        *,
        graph: str = DEFAULT_GRAPH,
        piece_base_url: str = "https://kaleidos-test.vlaanderen.be/document/",
    ):
        self.client = client
        self.graph = graph
        self.piece_base_url = piece_base_url

    def __enter__(self) -> "SparqlPieceSource":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.client.close()

    def query_page(self, request: PageRequest) -> List[RemoteRecord]:
        query_string = PIECES_PAGE_QUERY.format(
            graph=sparql_escape_uri(self.graph),
            lower=sparql_escape_datetime(request.lower_bound_exclusive),
            upper=sparql_escape_datetime(request.upper_bound_exclusive),
            limit=int(request.page_size),
        )
        bindings = self.client.query(query_string)
        try:
            return [
                RemoteRecord(
                    identifier=binding["file"]["value"],
                    created_at=parse_timestamp(binding["created"]["value"]),
                )
                for binding in bindings
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(
                "Malformed piece record in SPARQL response",
                endpoint=self.client.endpoint,
                cause=exc,
            ) from exc

    def _piece_of_file(self, identifier: str) -> Optional[Dict[str, Any]]:
        bindings = self.client.query(
            PIECE_OF_FILE_QUERY.format(
                graph=sparql_escape_uri(self.graph),
                file=sparql_escape_uri(identifier),
            )
        )
        return bindings[0] if bindings else None

    def get_piece_uri(self, identifier: str) -> Optional[str]:
        binding = self._piece_of_file(identifier)
        if binding is None:
            return None
        return _binding_value(binding, "piece")

    def get_piece_url(self, identifier: str) -> Optional[str]:
        binding = self._piece_of_file(identifier)
        if binding is None:
            return None
        piece_id = _binding_value(binding, "id")
        if not piece_id:
            return None
        return f"{self.piece_base_url}{piece_id}"

    def reinsert_piece(self, piece_uri: str) -> None:
        self.client.update(
            REINSERT_PIECE_UPDATE.format(
                graph=sparql_escape_uri(self.graph),
                piece=sparql_escape_uri(piece_uri),
            )
        )
        logger.info("Reinserted piece %s", piece_uri)
