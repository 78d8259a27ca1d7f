"""Tests for the modules loader."""

import time
from unittest.mock import Mock

import pytest
from conftest import touch, write_tree

from mlmodules.exceptions import ConfigurationError, DiscoveryError
from mlmodules.modules import LoadOptions, ModulesLoader, ModuleStateStore
from mlmodules.output import OutputFormatter


class TestModulesLoader:
    """Test ModulesLoader functionality."""

    @pytest.fixture
    def loader(self, store):
        return ModulesLoader(store)

    def test_create_loader(self, store):
        loader = ModulesLoader(store)
        assert loader.store is store
        assert loader.output.quiet

    def test_load_all_files(self, loader, store, sample_base_dir):
        report = loader.run(sample_base_dir)

        assert len(report.uploaded) == 26
        assert len(store.documents) == 26
        assert store.exists("/ext/module1.xqy")
        assert store.exists("/lib/module4.sjs")
        assert store.exists("/Default/App-Services/rest-api/options/sample-options.xml")

    def test_incremental_runs(self, loader, store, sample_base_dir, state_file):
        with ModuleStateStore(state_file) as state:
            assert len(loader.run(sample_base_dir, state_store=state).uploaded) == 26

        with ModuleStateStore(state_file) as state:
            assert loader.run(sample_base_dir, state_store=state).uploaded == []

            touch(sample_base_dir / "ext" / "lib" / "module2.xqy")
            report = loader.run(sample_base_dir, state_store=state)

        assert [f.uri for f in report.uploaded] == ["/ext/lib/module2.xqy"]
        assert len(report.skipped) == 25

    def test_minimum_timestamp_and_reset(self, loader, store, sample_base_dir, state_file):
        with ModuleStateStore(state_file) as state:
            state.set_minimum_timestamp(time.time() + 10000)
            report = loader.run(sample_base_dir, state_store=state)
            assert report.uploaded == []
            assert store.writes == []

            # Run twice to check reset is repeatable
            for _ in range(2):
                state.reset()
                state.set_minimum_timestamp(0)
                report = loader.run(sample_base_dir, state_store=state)
                assert len(report.uploaded) == 26
                assert len(store.documents) == 26

            assert loader.run(sample_base_dir, state_store=state).uploaded == []

    def test_minimum_timestamp_from_options(self, loader, sample_base_dir, state_file):
        options = LoadOptions(minimum_timestamp=time.time() + 10000)
        with ModuleStateStore(state_file) as state:
            report = loader.run(sample_base_dir, options, state)
            assert report.uploaded == []
            assert len(report.skipped) == 26

            # The threshold belongs to that run only
            assert state.minimum_timestamp == 0
            report = loader.run(sample_base_dir, LoadOptions(), state)
            assert len(report.uploaded) == 26

    def test_minimum_timestamp_without_state_store(self, loader, store, sample_base_dir):
        options = LoadOptions(minimum_timestamp=time.time() + 10000)

        report = loader.run(sample_base_dir, options)

        assert report.uploaded == []
        assert len(report.skipped) == 26
        assert store.writes == []
        assert len(loader.run(sample_base_dir).uploaded) == 26

    def test_minimum_timestamp_dry_run(self, loader, store, sample_base_dir):
        options = LoadOptions(minimum_timestamp=time.time() + 10000)
        report = loader.run(sample_base_dir, options, dry_run=True)
        assert report.uploaded == []

    @pytest.mark.parametrize(
        "pattern,count",
        [
            (r".*options.*(xml)", 1),
            (r".*transforms.*", 5),
            (r".*services.*", 3),
            (r".*", 26),
            (r".*/ext.*(lib|dots)/.*xqy", 2),
            (r"will-not-match", 0),
        ],
    )
    def test_include_pattern(self, loader, sample_base_dir, pattern, count):
        report = loader.run(sample_base_dir, LoadOptions(include_pattern=pattern))
        assert len(report.uploaded) == count

    @pytest.mark.parametrize("batch_size", [2, -1])
    def test_batch_size_with_pattern(self, loader, sample_base_dir, batch_size):
        options = LoadOptions(include_pattern=r".*/ext/.*", batch_size=batch_size)
        assert len(loader.run(sample_base_dir, options).uploaded) == 7

    def test_replace_tokens(self, loader, store, tmp_path):
        base = write_tree(
            tmp_path / "token-replace",
            {
                "options/sample-options.xml": "<search>fn:collection('%%REPLACEME%%')</search>",
                "services/sample.xqy": 'xdmp:log("%%REPLACEME%% called")',
                "transforms/xquery-transform.xqy": 'xdmp:log("%%REPLACEME%%")',
            },
        )
        options = LoadOptions(tokens={"%%REPLACEME%%": "hello-world"})

        loader.run(base, options)

        options_xml = store.documents[
            "/Default/App-Services/rest-api/options/sample-options.xml"
        ].decode()
        assert "fn:collection('hello-world')" in options_xml
        service = store.documents["/marklogic.rest.resource/sample/assets/resource.xqy"]
        assert b'xdmp:log("hello-world called")' in service
        transform = store.documents[
            "/marklogic.rest.transform/xquery-transform/assets/transform.xqy"
        ]
        assert b'xdmp:log("hello-world")' in transform
        assert all(b"%%REPLACEME%%" not in c for c in store.documents.values())

    def test_path_with_spaces(self, loader, store, tmp_path):
        base = write_tree(
            tmp_path / "path with spaces",
            {"root/example/example.xqy": "<example/>"},
        )

        report = loader.run(base)

        assert len(report.uploaded) == 1
        assert store.documents["/example/example.xqy"].strip() == b"<example/>"

    def test_upload_failures_reported(self, loader, store, sample_base_dir, state_file):
        store.fail_uris.add("/module3.xqy")

        with ModuleStateStore(state_file) as state:
            report = loader.run(sample_base_dir, state_store=state)
            assert len(report.uploaded) == 25
            assert [e.file.uri for e in report.failures] == ["/module3.xqy"]

            store.fail_uris.clear()
            retry = loader.run(sample_base_dir, state_store=state)

        assert [f.uri for f in retry.uploaded] == ["/module3.xqy"]

    def test_dry_run(self, loader, store, sample_base_dir, state_file):
        with ModuleStateStore(state_file) as state:
            report = loader.run(sample_base_dir, state_store=state, dry_run=True)
            assert len(report.uploaded) == 26
            assert store.writes == []
            assert len(state) == 0

    def test_missing_root_raises_before_upload(self, loader, store, tmp_path):
        with pytest.raises(DiscoveryError):
            loader.run(tmp_path / "nonexistent")
        assert store.writes == []

    def test_invalid_pattern_raises(self, loader, store, sample_base_dir):
        with pytest.raises(ConfigurationError):
            loader.run(sample_base_dir, LoadOptions(include_pattern="[bad"))
        assert store.writes == []

    def test_empty_directory(self, loader, tmp_path):
        report = loader.run(tmp_path)
        assert report.uploaded == []
        assert report.batches == 0
        assert report.succeeded

    def test_output_summary(self, store, sample_base_dir):
        output = Mock(spec=OutputFormatter)
        output.quiet = False
        output.json_output = False
        loader = ModulesLoader(store, output)

        report = loader.run(sample_base_dir, LoadOptions(batch_size=10))

        assert len(report.uploaded) == 26
        output.success.assert_called_with("Modules load complete!")
        output.info.assert_any_call("  Loaded: 26 file(s)")
