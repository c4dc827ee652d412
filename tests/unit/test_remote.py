"""Tests for the SPARQL client and piece source.

Uses httpx.MockTransport so no triplestore is needed.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from signature_sweep.lib.errors import FetchError
from signature_sweep.lib.remote import (
    PageRequest,
    RemoteRecord,
    SparqlClient,
    SparqlPieceSource,
    sparql_escape_datetime,
    sparql_escape_uri,
)
from signature_sweep.lib.resilience import RetryConfig
from tests.fakes import ts

ENDPOINT = "http://database:8890/sparql"
FAST_RETRY = RetryConfig(max_attempts=3, backoff_seconds=0.001, jitter=False)


def sparql_json(rows):
    bindings = [
        {name: {"type": "literal", "value": value} for name, value in row.items()}
        for row in rows
    ]
    return httpx.Response(
        200,
        json={"head": {"vars": []}, "results": {"bindings": bindings}},
        headers={"Content-Type": "application/sparql-results+json"},
    )


class RecordingHandler:
    """Replays queued responses and records the form of every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.forms = []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.forms.append(parse_qs(request.content.decode("utf-8")))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler, retry=FAST_RETRY):
    return SparqlClient(ENDPOINT, retry=retry, transport=httpx.MockTransport(handler))


class TestEscaping:
    """Tests for SPARQL term escaping."""

    def test_uri(self):
        """URIs should be wrapped and dangerous characters escaped."""
        assert sparql_escape_uri("share://a.pdf") == "<share://a.pdf>"
        assert sparql_escape_uri('share://a>b"') == '<share://a\\>b\\">'

    def test_datetime(self):
        """Datetimes should be typed xsd:dateTime literals in UTC."""
        assert sparql_escape_datetime(ts(0)) == '"2020-01-01T00:00:00Z"^^xsd:dateTime'


class TestSparqlClient:
    """Tests for SparqlClient."""

    def test_query_posts_form_with_sudo_header(self):
        """SELECT queries should be form-encoded with the sudo header."""
        handler = RecordingHandler(sparql_json([{"x": "1"}]))
        with make_client(handler) as client:
            bindings = client.query("SELECT ?x WHERE {}")

        assert bindings == [{"x": {"type": "literal", "value": "1"}}]
        request = handler.requests[0]
        assert request.method == "POST"
        assert request.headers["mu-auth-sudo"] == "true"
        assert "sparql-results+json" in request.headers["Accept"]
        assert handler.forms[0]["query"] == ["SELECT ?x WHERE {}"]

    def test_update_posts_update_form(self):
        """Updates should use the update form field."""
        handler = RecordingHandler(httpx.Response(204))
        with make_client(handler) as client:
            client.update("INSERT DATA {}")
        assert handler.forms[0]["update"] == ["INSERT DATA {}"]

    def test_retries_transient_status(self):
        """5xx responses should be retried."""
        handler = RecordingHandler(httpx.Response(503), sparql_json([]))
        with make_client(handler) as client:
            assert client.query("SELECT") == []
        assert len(handler.requests) == 2

    def test_retries_transport_errors(self):
        """Connection errors should be retried."""
        handler = RecordingHandler(httpx.ConnectError("refused"), sparql_json([]))
        with make_client(handler) as client:
            assert client.query("SELECT") == []
        assert len(handler.requests) == 2

    def test_client_error_is_not_retried(self):
        """A 400 is permanent and should become a FetchError at once."""
        handler = RecordingHandler(httpx.Response(400), sparql_json([]))
        with make_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                client.query("SELECT broken")
        assert exc_info.value.status_code == 400
        assert len(handler.requests) == 1

    def test_exhausted_retries_raise_fetch_error(self):
        """Persistent transient failures should end in FetchError."""
        handler = RecordingHandler(*[httpx.Response(502) for _ in range(3)])
        with make_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                client.query("SELECT")
        assert exc_info.value.status_code == 502
        assert len(handler.requests) == 3

    def test_malformed_json(self):
        """A body without results.bindings should raise FetchError."""
        handler = RecordingHandler(httpx.Response(200, content=json.dumps({"oops": 1})))
        with make_client(handler) as client:
            with pytest.raises(FetchError, match="Malformed"):
                client.query("SELECT")


class TestSparqlPieceSource:
    """Tests for SparqlPieceSource."""

    def test_query_page_builds_bounded_query(self):
        """The page query should carry both bounds, the limit and the order."""
        handler = RecordingHandler(
            sparql_json(
                [
                    {"file": "share://a.pdf", "created": "2020-01-01T00:01:00Z"},
                    {"file": "share://b.pdf", "created": "2020-01-01T00:02:00Z"},
                ]
            )
        )
        source = SparqlPieceSource(make_client(handler), graph="http://graph")
        records = source.query_page(PageRequest(ts(0), ts(100), 2))

        assert records == [
            RemoteRecord("share://a.pdf", ts(1)),
            RemoteRecord("share://b.pdf", ts(2)),
        ]
        query = handler.forms[0]["query"][0]
        assert "GRAPH <http://graph>" in query
        assert '?created > "2020-01-01T00:00:00Z"^^xsd:dateTime' in query
        assert '?created < "2020-01-01T01:40:00Z"^^xsd:dateTime' in query
        assert "ORDER BY ?created" in query
        assert query.rstrip().endswith("LIMIT 2")

    def test_query_page_accepts_short_fractions(self):
        """Triplestore timestamps with two fraction digits should parse."""
        handler = RecordingHandler(
            sparql_json([{"file": "share://a.pdf", "created": "2020-01-01T00:01:00.12Z"}])
        )
        source = SparqlPieceSource(make_client(handler))
        records = source.query_page(PageRequest(ts(0), ts(100), 10))
        assert records[0].created_at.microsecond == 120000

    def test_query_page_rejects_malformed_records(self):
        """Records missing the created field should raise FetchError."""
        handler = RecordingHandler(sparql_json([{"file": "share://a.pdf"}]))
        source = SparqlPieceSource(make_client(handler))
        with pytest.raises(FetchError, match="Malformed piece record"):
            source.query_page(PageRequest(ts(0), ts(100), 10))

    def test_get_piece_url(self):
        """The piece URL should be the base URL plus the piece uuid."""
        handler = RecordingHandler(
            sparql_json([{"piece": "http://themis/pieces/1", "id": "abc-123"}])
        )
        source = SparqlPieceSource(make_client(handler), piece_base_url="https://k/document/")
        assert source.get_piece_url("share://a.pdf") == "https://k/document/abc-123"
        assert "<share://a.pdf> nie:dataSource" in handler.forms[0]["query"][0]

    def test_get_piece_url_unknown(self):
        """An unknown file should give None."""
        source = SparqlPieceSource(make_client(RecordingHandler(sparql_json([]))))
        assert source.get_piece_url("share://missing.pdf") is None

    def test_get_piece_uri(self):
        """get_piece_uri should return the owning piece."""
        handler = RecordingHandler(sparql_json([{"piece": "http://themis/pieces/1"}]))
        source = SparqlPieceSource(make_client(handler))
        assert source.get_piece_uri("share://a.pdf") == "http://themis/pieces/1"

    def test_reinsert_piece(self):
        """reinsert_piece should insert the piece's type triple."""
        handler = RecordingHandler(httpx.Response(204))
        with SparqlPieceSource(make_client(handler), graph="http://graph") as source:
            source.reinsert_piece("http://themis/pieces/1")

        update = handler.forms[0]["update"][0]
        assert "INSERT DATA" in update
        assert "<http://themis/pieces/1> a dossier:Stuk ." in update
        assert "GRAPH <http://graph>" in update
