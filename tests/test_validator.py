#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Validator 测试

测试完整报告、逐条目检查和警告项。
"""

import json

import pytest

from kfxmod import PackWriter, PackReader, Validator, parse_metadata
from kfxmod.core.schema import ModPackHeader

from conftest import flip_byte


def build_with(tmp_path, metadata, files: dict, name="mod.kfxmod"):
    for file_name, content in files.items():
        (tmp_path / file_name).write_bytes(content)
    output = tmp_path / name
    writer = PackWriter(str(output), metadata)
    for file_name in files:
        writer.add_file(str(tmp_path / file_name))
    writer.build()
    return output


class TestValidatorClean:
    """完好归档"""

    def test_tempest_passes(self, tempest_archive):
        report = Validator().validate_file(str(tempest_archive))

        assert report.passed
        assert report.errors == []
        assert report.warnings == []

    def test_sample_passes(self, sample_archive):
        path, _ = sample_archive
        assert Validator().validate_file(str(path)).passed

    def test_format(self, tempest_archive):
        text = Validator().validate_file(str(tempest_archive)).format()
        assert text.startswith("校验通过: 0 个错误, 0 个警告")

    def test_progress_callback(self, sample_archive):
        path, files = sample_archive
        seen = []

        Validator(progress_callback=seen.append).validate_file(str(path))

        assert seen[-1].current == len(files)


class TestValidatorCorruption:
    """损坏归档的完整报告"""

    def test_content_flip(self, tempest_archive):
        """翻转最后一个内容字节: 一个条目校验错误 + 整档校验错误"""
        flip_byte(tempest_archive, -1)

        report = Validator().validate_file(str(tempest_archive))

        assert not report.passed
        entry_errors = [e for e in report.errors if e.path is not None]
        assert [(e.kind, e.path) for e in entry_errors] == [("ChecksumMismatch", "readme.txt")]
        assert report.kinds() == ["ChecksumMismatch", "ChecksumMismatch"]
        assert report.errors[-1].path is None

    def test_idempotent(self, tempest_archive):
        """同一文件重复校验结果相同"""
        flip_byte(tempest_archive, -1)
        validator = Validator()

        first = validator.validate_file(str(tempest_archive))
        second = validator.validate_file(str(tempest_archive))

        assert first == second

    def test_collects_every_entry(self, sample_archive):
        """遇到错误后继续检查其余条目"""
        path, _ = sample_archive
        with PackReader(str(path)) as reader:
            entries = reader.entries
            content_offset = reader.header.content_offset

        for entry in entries[:2]:
            flip_byte(path, content_offset + entry.offset)

        report = Validator().validate_file(str(path))
        bad = sorted(e.path for e in report.errors if e.path is not None)

        assert bad == sorted(e.path for e in entries[:2])

    def test_undecodable_header(self, tmp_path):
        path = tmp_path / "junk.kfxmod"
        path.write_bytes(b"not a mod package at all" * 4)

        report = Validator().validate_file(str(path))

        assert report.kinds() == ["InvalidHeader"]
        assert report.warnings == []

    def test_metadata_corruption(self, tempest_archive):
        flip_byte(tempest_archive, ModPackHeader.SIZE + 3)

        report = Validator().validate_file(str(tempest_archive))

        assert "CorruptData" in report.kinds() or "InvalidMetadata" in report.kinds()
        assert report.kinds()[-1] == "ChecksumMismatch"

    def test_truncated(self, tempest_archive):
        data = tempest_archive.read_bytes()
        tempest_archive.write_bytes(data[:-4])

        report = Validator().validate_file(str(tempest_archive))

        assert report.kinds()[0] == "CorruptData"
        assert not report.passed


class TestValidatorWarnings:
    """警告项"""

    def test_nonzero_flags_and_reserved(self, tmp_path, metadata):
        (tmp_path / "a.txt").write_bytes(b"a")
        output = tmp_path / "flags.kfxmod"
        writer = PackWriter(str(output), metadata)
        writer.add_file(str(tmp_path / "a.txt"))
        writer._header_flags = 1
        writer._header_reserved = b'\x00' * 15 + b'\x01'
        writer.build()

        report = Validator().validate_file(str(output))

        assert report.passed
        assert [w.kind for w in report.warnings] == ["NonZeroFlags", "NonZeroReserved"]
        assert "encrypted" in report.warnings[0].message

    def test_large_entry(self, tmp_path, metadata):
        output = build_with(tmp_path, metadata, {"big.bin": b"\x00" * 4096, "small.txt": b"x"})

        report = Validator(large_entry_threshold=1024).validate_file(str(output))

        assert report.passed
        assert [(w.kind, w.path) for w in report.warnings] == [("LargeEntry", "big.bin")]


class TestValidatorDependencies:
    """依赖检查"""

    @pytest.fixture
    def dependent_archive(self, tmp_path, metadata_dict):
        metadata_dict["dependencies"] = [
            {"mod_id": "base_assets", "min_version": "1.2.0"},
            {"mod_id": "music_pack", "required": False},
        ]
        metadata_dict["conflicts"] = [{"mod_id": "calm_keeper"}]
        meta = parse_metadata(json.dumps(metadata_dict).encode("utf-8"))
        return build_with(tmp_path, meta, {"readme.txt": b"Hello, Imp!"})

    def test_skipped_without_available_mods(self, dependent_archive):
        report = Validator().validate_file(str(dependent_archive))
        assert report.passed
        assert report.warnings == []

    def test_missing_dependency(self, dependent_archive):
        report = Validator(available_mods={}).validate_file(str(dependent_archive))

        assert report.kinds() == ["MissingDependency"]
        assert [w.kind for w in report.warnings] == ["MissingOptionalDependency"]

    def test_satisfied_with_conflict(self, dependent_archive):
        available = {"base_assets": "1.3.0", "music_pack": "2.0.0", "calm_keeper": "1.0.0"}
        report = Validator(available_mods=available).validate_file(str(dependent_archive))

        assert report.passed
        assert [w.kind for w in report.warnings] == ["Conflict"]

    def test_old_version(self, dependent_archive):
        available = {"base_assets": "1.1.9", "music_pack": "1.0.0"}
        report = Validator(available_mods=available).validate_file(str(dependent_archive))

        assert report.kinds() == ["UnsatisfiedDependency"]
