"""Tests for the command line entry point."""

import pytest

from dp_bandwidth.cli import EXIT_ERROR, EXIT_FITS, EXIT_OVER_CAPACITY, main
from dp_bandwidth.config_io import load_state


class TestModes:
    def test_lists_modes_and_presets(self, capsys):
        assert main(['modes']) == EXIT_FITS
        out = capsys.readouterr().out
        assert '7  3840×2160 @ 144' in out
        assert 'dp13_hbr3' in out


class TestTiming:
    def test_standard_cvt(self, capsys):
        assert main(['timing', '1920', '1080', '60', '--profile', 'cvt']) == EXIT_FITS
        out = capsys.readouterr().out
        assert 'Pixel clock: 173.000 MHz' in out
        assert 'H total:     2576' in out

    def test_invalid_size(self, capsys):
        assert main(['timing', '0', '1080', '60']) == EXIT_ERROR
        assert capsys.readouterr().out.startswith('Error:')

    def test_unknown_profile_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            main(['timing', '1920', '1080', '60', '--profile', 'manual'])


class TestCheck:
    def test_default_session_fits(self, capsys):
        assert main(['check']) == EXIT_FITS
        assert 'Fits within selected DP payload' in capsys.readouterr().out

    def test_modes_fit(self):
        assert main(['check', '--mode', '7', '--mode', '0']) == EXIT_FITS

    def test_over_capacity(self, capsys):
        code = main(['check', '-m', '8', '--no-dsc', '--preset', 'dp11_rbr'])
        assert code == EXIT_OVER_CAPACITY
        assert 'Exceeds selected DP payload' in capsys.readouterr().out

    def test_bad_mode_index(self, capsys):
        assert main(['check', '--mode', '99']) == EXIT_ERROR
        assert 'Error: No predefined mode at index 99' in capsys.readouterr().out

    def test_extra_modes_truncated(self, tmp_path, capsys):
        export = tmp_path / 'five.json'
        args = ['check', '--export', str(export)]
        for _ in range(5):
            args += ['--mode', '0']
        assert main(args) == EXIT_FITS
        assert 'Warning: 5 modes given' in capsys.readouterr().out
        assert len(load_state(str(export)).slots) == 4

    def test_export_and_reload(self, tmp_path):
        export = tmp_path / 'session.json'
        assert main(['check', '-m', '5', '-m', '2', '--bpc', '10', '--preset', 'dp20_uhbr10',
                     '--export', str(export)]) == EXIT_FITS
        state = load_state(str(export))
        assert [s.mode_index for s in state.slots] == [5, 2]
        assert all(s.color.bpc == 10 for s in state.slots)
        assert state.preset_id == 'dp20_uhbr10'
        assert state.link.coding == '128b132b'

        assert main(['check', str(export)]) == EXIT_FITS
        assert main(['check', str(export), '--no-dsc', '--preset', 'dp11_rbr']) == EXIT_OVER_CAPACITY

    def test_missing_config(self, tmp_path, capsys):
        assert main(['check', str(tmp_path / 'missing.json')]) == EXIT_ERROR
        assert 'Error: File not found' in capsys.readouterr().out

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / 'bad.json'
        path.write_text('{"timings": 5}', encoding='utf-8')
        assert main(['check', str(path)]) == EXIT_ERROR
        assert "Error: 'timings' must be a list" in capsys.readouterr().out

    def test_non_utf8_config(self, tmp_path, capsys):
        path = tmp_path / 'session.json'
        path.write_bytes(b'\xff\xfe{"timings": []}')
        assert main(['check', str(path)]) == EXIT_ERROR
        assert 'Error:' in capsys.readouterr().out

    @pytest.mark.parametrize('rate', ['0', '-8.1'])
    def test_non_positive_rate(self, rate, capsys):
        assert main(['check', f'--rate={rate}']) == EXIT_ERROR
        assert 'Error: Per-lane rate must be positive' in capsys.readouterr().out

    def test_html_report(self, tmp_path):
        output = tmp_path / 'out' / 'report_two_screens.html'
        assert main(['check', '-m', '7', '-m', '7', '--html', str(output)]) == EXIT_FITS
        html = output.read_text(encoding='utf-8')
        assert 'Bandwidth Report: Two Screens' in html
        assert (tmp_path / 'out' / 'report_two_screens_images' / 'bandwidth.png').exists()
