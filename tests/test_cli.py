import pytest

from conftest import build_container, build_package, ps2_texture
from gmccli.main import build_parser, main
from libgmc.platform import MGX_MODEL_PACKAGE_PS2


@pytest.fixture
def chunk_file(tmp_path, ps2_models):
    pkg1 = build_package(MGX_MODEL_PACKAGE_PS2, uid=1, models=ps2_models)
    pkg2 = build_package(MGX_MODEL_PACKAGE_PS2, uid=2, textures=[ps2_texture(reserved=0x77, width=8)])
    broken = b"GMC2" + b"\0" * 8
    data = build_container(
        [
            (0x100, [(MGX_MODEL_PACKAGE_PS2, pkg1)]),
            (0x200, [(MGX_MODEL_PACKAGE_PS2, pkg2), (MGX_MODEL_PACKAGE_PS2, broken)]),
        ]
    )
    p = tmp_path / "level.chnk"
    p.write_bytes(data)
    return str(p)


def test_parser_defaults():
    args = build_parser().parse_args(["models", "x.chnk"])
    assert (args.platform, args.version, args.index, args.all, args.no_vif) == ("ps2", 0, 1, False, False)


def test_chunks(chunk_file, capsys):
    assert main(["chunks", chunk_file]) == 0
    out = capsys.readouterr().out
    assert "GMC2" in out
    assert "0x00000200" in out


def test_models(chunk_file, capsys):
    assert main(["models", chunk_file]) == 0
    out = capsys.readouterr().out
    assert "ModelPackage index: 1" in out
    assert "ModelPackage parent: 0x00000100" in out
    assert "**** Model 1 / 1 *****" in out
    assert "STCYCL" in out


def test_models_all_reports_broken_package(chunk_file, capsys):
    assert main(["models", chunk_file, "--index", "2", "--all", "--no-vif"]) == 1
    out = capsys.readouterr().out
    assert "ModelPackage index: 3" in out
    assert "Processed 0 models / 0 materials." in out
    assert "Unexpected end of data" in out or "header needs" in out


def test_textures(chunk_file, capsys):
    assert main(["textures", chunk_file, "--index", "2"]) == 0
    out = capsys.readouterr().out
    assert "texture 0000000000000077 {" in out


def test_index_out_of_range(chunk_file):
    with pytest.raises(SystemExit):
        main(["models", chunk_file, "--index", "9"])


def test_no_packages_for_platform(chunk_file):
    with pytest.raises(SystemExit) as e:
        main(["models", chunk_file, "--platform", "pc", "--version", "6"])
    assert "MDPC" in str(e.value.code)


def test_missing_file(tmp_path, capsys):
    assert main(["chunks", str(tmp_path / "nope.chnk")]) == 2
    assert "File not found" in capsys.readouterr().out
