import pytest

from scanopts.eol import debian_eol, main, ubuntu_eol


def test_debian_released_entry():
    got = list(debian_eol(["10,Buster,buster,2017-06-17,2019-07-06,2022-9-10"]))
    assert got == ['"10": time.Date(2022, 9, 10, 23, 59, 59, 0, time.UTC),']


def test_debian_unreleased_and_blank():
    got = list(debian_eol(["12,Bookworm,bookworm,2021-08-14", "", ",,"]))
    assert got == ['"12": time.Date(3000, 1, 1, 23, 59, 59, 0, time.UTC),']


def test_debian_bad_date_is_zero():
    got = list(debian_eol(["9,Stretch,stretch,2015-04-25,2017-06-17,oops"]))
    assert got == ['"9": time.Date(1, 1, 1, 23, 59, 59, 0, time.UTC),']


def test_ubuntu_entry_uses_version():
    got = list(ubuntu_eol(["20.04 LTS,Focal Fossa,focal,2019-10-17,2020-04-23,2025-04-23"]))
    assert got == ['"20.04": time.Date(2025, 4, 23, 23, 59, 59, 0, time.UTC),']


def test_main_reads_files(tmp_path, capsys):
    (tmp_path / "debian.csv").write_text("12,Bookworm,bookworm,2021-08-14\n")
    (tmp_path / "ubuntu.csv").write_text("22.04 LTS,Jammy,jammy,2021-10-14,2022-04-21,2027-04-21\n")
    assert main([str(tmp_path)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Debian"
    assert out[1].startswith('"12": time.Date(3000')
    assert out[3] == "Ubuntu"
    assert out[4].startswith('"22.04": time.Date(2027, 4, 21')


def test_main_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        main([str(tmp_path)])