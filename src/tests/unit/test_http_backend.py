"""Tests for the HTTP backend using httpx.MockTransport."""

import json

import httpx
import pytest

from vaultgate.backends.http import DOCUMENT_MAP, MARKDOWN, NOTE_JSON, HttpBackend, note_path
from vaultgate.core.errors import BackendUnavailable, CommandFailure


def mock_backend(handler, **kwargs) -> HttpBackend:
    return HttpBackend(
        base_url="http://vault.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def note_json(path: str, **extra) -> dict:
    note = {
        "path": path,
        "content": "",
        "frontmatter": {},
        "tags": [],
        "stat": {"ctime": 0, "mtime": 0, "size": 0},
    }
    note.update(extra)
    return note


class TestProbe:
    """Tests for HttpBackend.probe()."""

    @pytest.mark.asyncio
    async def test_probe_ok(self):
        backend = mock_backend(lambda request: httpx.Response(200, json={"status": "OK"}))
        assert await backend.probe() is True

    @pytest.mark.asyncio
    async def test_probe_server_error(self):
        backend = mock_backend(lambda request: httpx.Response(503))
        assert await backend.probe() is False

    @pytest.mark.asyncio
    async def test_probe_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = mock_backend(handler)
        assert await backend.probe() is False


class TestFailureClassification:
    """HTTP status and transport errors map onto the error taxonomy."""

    @pytest.mark.asyncio
    async def test_5xx_is_unavailable(self):
        backend = mock_backend(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(BackendUnavailable, match="HTTP 503"):
            await backend.execute("read", {"file": "A"})

    @pytest.mark.asyncio
    async def test_404_is_command_failure(self):
        backend = mock_backend(
            lambda request: httpx.Response(404, json={"message": "File not found"})
        )
        with pytest.raises(CommandFailure, match="read file=A: HTTP 404") as exc_info:
            await backend.execute("read", {"file": "A"})
        assert "File not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = mock_backend(handler)
        with pytest.raises(BackendUnavailable, match="cannot reach"):
            await backend.execute("files")

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        backend = mock_backend(handler)
        with pytest.raises(BackendUnavailable, match="timed out"):
            await backend.execute("read", {"file": "A"})


class TestReadCommands:
    """Tests for single-note commands."""

    @pytest.mark.asyncio
    async def test_read_sends_markdown_accept_and_bearer(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="# Title\n\nBody\n")

        backend = mock_backend(handler)
        assert await backend.execute("read", {"path": "Folder/My Note"}) == "# Title\n\nBody"

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/vault/Folder/My Note.md"
        assert request.headers["Accept"] == MARKDOWN
        assert request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_properties_and_aliases_use_note_json(self):
        def handler(request):
            assert request.headers["Accept"] == NOTE_JSON
            return httpx.Response(
                200,
                json=note_json(
                    "A.md", frontmatter={"status": "draft", "aliases": ["Alpha", "First"]}
                ),
            )

        backend = mock_backend(handler)
        assert await backend.execute("properties", {"file": "A"}) == (
            "status: draft\naliases: Alpha, First"
        )
        assert await backend.execute("aliases", {"file": "A"}) == "Alpha\nFirst"

    @pytest.mark.asyncio
    async def test_file_metadata(self):
        def handler(request):
            return httpx.Response(
                200,
                json=note_json(
                    "notes/A.md", stat={"ctime": 0, "mtime": 1000, "size": 42}
                ),
            )

        output = await mock_backend(handler).execute("file", {"file": "notes/A"})
        assert output.split("\n") == [
            "path: notes/A.md",
            "name: A",
            "folder: notes",
            "size: 42",
            "created: 1970-01-01T00:00:00.000Z",
            "modified: 1970-01-01T00:00:01.000Z",
        ]

    @pytest.mark.asyncio
    async def test_outline_from_document_map(self):
        def handler(request):
            assert request.headers["Accept"] == DOCUMENT_MAP
            return httpx.Response(200, json={"headings": ["Top", "Top::Sub", "Top::Sub::Leaf"]})

        backend = mock_backend(handler)
        assert await backend.execute("outline", {"file": "A"}) == "# Top\n## Sub\n### Leaf"
        assert await backend.execute("outline", {"file": "A", "format": "tree"}) == (
            "Top\n  Sub\n    Leaf"
        )

    @pytest.mark.asyncio
    async def test_note_tags_get_hash_prefix(self):
        def handler(request):
            return httpx.Response(200, json=note_json("A.md", tags=["idea", "#done"]))

        assert await mock_backend(handler).execute("tags", {"file": "A"}) == "#idea\n#done"

    @pytest.mark.asyncio
    async def test_search_json(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.params["query"] == "plan"
            return httpx.Response(
                200,
                json=[
                    {"filename": "A.md", "matches": [{"context": "the plan"}]},
                    {"filename": "B.md", "matches": []},
                ],
            )

        backend = mock_backend(handler)
        raw = await backend.execute("search", {"query": "plan", "format": "json"})
        assert json.loads(raw) == [
            {"file": "A.md", "matches": [{"content": "the plan"}]},
            {"file": "B.md", "matches": []},
        ]
        assert await backend.execute("search", {"query": "plan", "limit": 1}) == "A"


class TestListing:
    """Tests for directory walking and sampled analyses."""

    @staticmethod
    def listing_handler(tree: dict[str, list[str]], notes: dict[str, str], hits: list):
        def handler(request):
            path = request.url.path
            if path.endswith("/"):
                return httpx.Response(200, json={"files": tree[path]})
            hits.append(path)
            return httpx.Response(200, text=notes.get(path[len("/vault/") :], ""))

        return handler

    @pytest.mark.asyncio
    async def test_files_walks_folders_and_skips_hidden(self):
        tree = {
            "/vault/": ["A.md", "sub/", ".obsidian/", ".hidden.md"],
            "/vault/sub/": ["B.md", "img.png"],
        }
        backend = mock_backend(self.listing_handler(tree, {}, []))

        assert await backend.execute("files") == "A.md\nsub/B.md\nsub/img.png"
        assert await backend.execute("files", {"ext": "png"}) == "sub/img.png"
        assert await backend.execute("files", {"folder": "sub", "total": True}) == "2"

    @pytest.mark.asyncio
    async def test_orphans_read_at_most_sample_size_notes(self):
        files = [f"N{i:03}.md" for i in range(150)]
        hits: list[str] = []
        backend = mock_backend(
            self.listing_handler({"/vault/": files}, {}, hits), sample_size=100
        )

        orphans = await backend.execute("orphans")

        assert len(hits) == 100
        assert len(orphans.split("\n")) == 100

    @pytest.mark.asyncio
    async def test_graph_over_sample(self):
        tree = {"/vault/": ["A.md", "B.md", "C.md", "pic.png"]}
        notes = {"A.md": "[[B]] ![[pic.png]]", "B.md": "[[C]] [[Ghost]] [[Ghost]]", "C.md": ""}
        backend = mock_backend(self.listing_handler(tree, notes, []))

        assert await backend.execute("orphans") == "A"
        assert await backend.execute("deadends") == "C"
        assert await backend.execute("unresolved", {"counts": True}) == "Ghost\t2"

    @pytest.mark.asyncio
    async def test_unloadable_notes_are_left_out(self):
        def handler(request):
            if request.url.path == "/vault/":
                return httpx.Response(200, json={"files": ["A.md", "Gone.md"]})
            if request.url.path == "/vault/Gone.md":
                return httpx.Response(404)
            return httpx.Response(200, text="no links")

        assert await mock_backend(handler).execute("deadends") == "A"

    @pytest.mark.asyncio
    async def test_vault_wide_tags_use_tag_sample(self):
        files = [f"N{i}.md" for i in range(5)]
        requested = []

        def handler(request):
            if request.url.path == "/vault/":
                return httpx.Response(200, json={"files": files})
            requested.append(request.url.path)
            tags = ["common", "rare"] if request.url.path == "/vault/N0.md" else ["common"]
            return httpx.Response(200, json=note_json(request.url.path[7:], tags=tags))

        backend = mock_backend(handler, tag_sample_size=3)
        assert await backend.execute("tags", {"counts": True}) == "#common\t3\n#rare\t1"
        assert len(requested) == 3


class TestWriteCommands:
    """Tests for mutations."""

    @pytest.mark.asyncio
    async def test_property_set_patches_frontmatter(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        backend = mock_backend(handler)
        assert await backend.execute(
            "property:set", {"file": "A", "name": "status", "value": "done"}
        ) == ""

        request = seen[0]
        assert request.method == "PATCH"
        assert request.headers["Operation"] == "replace"
        assert request.headers["Target-Type"] == "frontmatter"
        assert request.headers["Target"] == "status"
        assert json.loads(request.content) == "done"

    @pytest.mark.asyncio
    async def test_property_remove_rewrites_note(self):
        puts = []

        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, text="---\nstatus: draft\nkeep: 1\n---\nBody")
            puts.append(request.content.decode())
            return httpx.Response(204)

        await mock_backend(handler).execute(
            "property:remove", {"file": "A", "name": "status"}
        )
        assert puts == ["---\nkeep: 1\n---\nBody"]

    @pytest.mark.asyncio
    async def test_move_copies_then_deletes(self):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(200, text="content")
            return httpx.Response(204)

        await mock_backend(handler).execute("move", {"file": "A", "to": "archive/A"})
        assert calls == [
            ("GET", "/vault/A.md"),
            ("PUT", "/vault/archive/A.md"),
            ("DELETE", "/vault/A.md"),
        ]

    @pytest.mark.asyncio
    async def test_bookmark_not_offered(self):
        backend = mock_backend(lambda request: httpx.Response(200))
        with pytest.raises(CommandFailure, match="not available via the http backend"):
            await backend.execute("bookmark", {"file": "A"})


def test_note_path_encoding():
    """Segments are percent-encoded; .md is added once."""
    assert note_path("My Folder/Note #1") == "My%20Folder/Note%20%231.md"
    assert note_path("A.md") == "A.md"


class TestLinkCommands:
    """Backlinks, tasks and recents built from search and note metadata."""

    @pytest.mark.asyncio
    async def test_backlinks_keep_only_exact_targets(self):
        """A search hit for ``[[B`` counts only if the link resolves to B."""

        def handler(request):
            assert request.url.params["query"] == "[[B"
            return httpx.Response(
                200,
                json=[
                    {"filename": "Other.md", "matches": [{"context": "see [[Bob]]"}]},
                    {
                        "filename": "Real.md",
                        "matches": [{"context": "see [[B]]"}, {"context": "again [[b|bee]]"}],
                    },
                    {"filename": "B.md", "matches": [{"context": "self [[B]]"}]},
                ],
            )

        backend = mock_backend(handler)
        assert await backend.execute("backlinks", {"file": "B"}) == "Real"
        assert await backend.execute("backlinks", {"file": "B", "counts": True}) == "Real\t2"

    @pytest.mark.asyncio
    async def test_backlinks_respect_case_policy(self):
        def handler(request):
            return httpx.Response(
                200, json=[{"filename": "Real.md", "matches": [{"context": "[[b]]"}]}]
            )

        strict = mock_backend(handler, case_sensitive_links=True)
        assert await strict.execute("backlinks", {"file": "B"}) == ""

    @pytest.mark.asyncio
    async def test_tasks_from_search_context(self):
        def handler(request):
            assert request.url.params["query"] == "- [ ]"
            return httpx.Response(
                200,
                json=[
                    {
                        "filename": "A.md",
                        "matches": [
                            {"context": "## Tasks\n- [ ] write tests\n- [x] done already"},
                            {"context": "- [ ] write tests\n"},
                        ],
                    },
                    {"filename": "folder/D.md", "matches": [{"context": "- [ ] review D"}]},
                ],
            )

        assert await mock_backend(handler).execute("tasks") == (
            "A: - [ ] write tests\nfolder/D: - [ ] review D"
        )

    @pytest.mark.asyncio
    async def test_recents_newest_first(self):
        mtimes = {"Old.md": 1_000, "New.md": 3_000, "Mid.md": 2_000}

        def handler(request):
            if request.url.path == "/vault/":
                return httpx.Response(200, json={"files": [*mtimes, "pic.png"]})
            path = request.url.path[len("/vault/") :]
            return httpx.Response(
                200, json=note_json(path, stat={"ctime": 0, "mtime": mtimes[path], "size": 1})
            )

        assert await mock_backend(handler).execute("recents") == "New\nMid\nOld"


class InMemoryVault:
    """Request handler keeping notes in a dict, like the control-plane would."""

    def __init__(self):
        self.notes: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/vault/") :]
        body = request.content.decode("utf-8")
        if request.method == "GET":
            if path not in self.notes:
                return httpx.Response(404, json={"message": "File not found"})
            return httpx.Response(200, text=self.notes[path])
        if request.method == "PUT":
            self.notes[path] = body
        elif request.method == "POST":
            self.notes[path] = self.notes.get(path, "") + body
        elif request.method == "PATCH" and request.headers.get("Operation") == "prepend":
            self.notes[path] = body + self.notes[path]
        elif request.method == "DELETE":
            self.notes.pop(path, None)
        return httpx.Response(204)


class TestNoteEdits:
    """create, append and prepend requests and their effect on later reads."""

    @pytest.mark.asyncio
    async def test_create_puts_markdown_at_encoded_path(self):
        vault = InMemoryVault()

        await mock_backend(vault).execute(
            "create", {"name": "inbox/New Idea", "content": "hello"}
        )

        request = vault.requests[0]
        assert request.method == "PUT"
        assert request.url.raw_path == b"/vault/inbox/New%20Idea.md"
        assert request.headers["Content-Type"] == MARKDOWN
        assert vault.notes == {"inbox/New Idea.md": "hello"}

    @pytest.mark.asyncio
    async def test_append_and_prepend_requests(self):
        vault = InMemoryVault()
        vault.notes["A.md"] = "body\n"
        backend = mock_backend(vault)

        await backend.execute("append", {"file": "A", "content": "tail\n"})
        await backend.execute("prepend", {"file": "A", "content": "head\n"})

        append, prepend = vault.requests
        assert (append.method, append.content) == ("POST", b"tail\n")
        assert (prepend.method, prepend.headers["Operation"]) == ("PATCH", "prepend")
        assert vault.notes["A.md"] == "head\nbody\ntail\n"

    @pytest.mark.asyncio
    async def test_write_then_read(self):
        backend = mock_backend(InMemoryVault())

        await backend.execute("create", {"name": "Log", "content": "first\n"})
        await backend.execute("append", {"file": "Log", "content": "second\n"})
        await backend.execute("prepend", {"file": "Log", "content": "zero\n"})
        assert await backend.execute("read", {"file": "Log"}) == "zero\nfirst\nsecond"

        await backend.execute("move", {"file": "Log", "to": "archive/Log"})
        assert await backend.execute("read", {"file": "archive/Log"}) == "zero\nfirst\nsecond"
        with pytest.raises(CommandFailure, match="HTTP 404"):
            await backend.execute("read", {"file": "Log"})
