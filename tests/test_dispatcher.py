"""
Tests for the hot-folder dispatcher.

Orders are created in an in-memory repository and dispatched into a
temp hot-folder tree with a fixed clock (14:05 on 19/10/2026).
"""

import threading

import pytest
from loguru import logger

from printkiosk import dispatcher as dispatcher_module
from printkiosk.dispatcher import (
    HotFolderDispatcher, output_file_name, sanitize_client_name
)
from printkiosk.errors import DispatchError, OrderNotFoundError
from printkiosk.models import DispatchState

from .conftest import list_outputs, make_image_bytes, open_jpeg

STAMP = '1405_19102026'


@pytest.fixture
def error_messages():
    """Capture loguru ERROR records."""
    messages = []
    handler_id = logger.add(messages.append, level='ERROR', format='{message}')
    yield messages
    logger.remove(handler_id)


class TestNaming:

    def test_output_file_name(self):
        assert output_file_name('Ana Pérez', STAMP, 7) == f'Ana_Perez_{STAMP}_007.jpg'

    def test_client_name_is_made_safe(self):
        assert sanitize_client_name('../../etc/passwd') == 'etc_passwd'

    def test_empty_client_name(self):
        assert sanitize_client_name('') == 'cliente'
        assert sanitize_client_name(None) == 'cliente'


class TestDispatch:
    """Rendering orders into format folders."""

    def test_single_sequence_across_items(self, dispatcher, make_order, stage_upload,
                                          print_base_path, repository):
        order = make_order([
            ('kiosco', [stage_upload(), stage_upload()]),
            ('square-large', [stage_upload(), stage_upload()]),
        ])

        report = dispatcher.dispatch(order.id)

        assert list_outputs(print_base_path) == [
            f's4x6/Ana_Perez_{STAMP}_001.jpg',
            f's4x6/Ana_Perez_{STAMP}_002.jpg',
            f's6x6/Ana_Perez_{STAMP}_003.jpg',
            f's6x6/Ana_Perez_{STAMP}_004.jpg',
        ]
        assert len(report.written) == 4
        assert report.marked
        assert repository.get_order(order.id).files_copied is True

    def test_outputs_have_format_dimensions(self, dispatcher, make_order, stage_upload, print_base_path):
        order = make_order([('square-large', [stage_upload()])])

        dispatcher.dispatch(order.id)

        output = open_jpeg((print_base_path / 's6x6' / f'Ana_Perez_{STAMP}_001.jpg').read_bytes())
        assert output.size == (100, 100)

    def test_missing_source_is_skipped(self, dispatcher, make_order, stage_upload, print_base_path,
                                       repository, error_messages):
        missing = {'id': 'p2', 'name': 'gone.jpg', 'fileName': 'gone.jpg'}
        order = make_order([('kiosco', [stage_upload(), missing, stage_upload(), stage_upload()])])

        report = dispatcher.dispatch(order.id)

        assert list_outputs(print_base_path) == [
            f's4x6/Ana_Perez_{STAMP}_001.jpg',
            f's4x6/Ana_Perez_{STAMP}_002.jpg',
            f's4x6/Ana_Perez_{STAMP}_003.jpg',
        ]
        assert [p['id'] for p in report.skipped_photos] == ['p2']
        assert repository.get_order(order.id).files_copied is True
        assert any('gone.jpg' in m for m in error_messages)

    def test_photo_without_any_source(self, dispatcher, make_order, stage_upload, print_base_path):
        order = make_order([('kiosco', [{'id': 'nothing'}, stage_upload()])])

        report = dispatcher.dispatch(order.id)

        assert len(report.written) == 1
        assert report.skipped_photos[0]['id'] == 'nothing'

    def test_unknown_sku_is_skipped(self, dispatcher, make_order, stage_upload, print_base_path, repository):
        order = make_order([('poster', [stage_upload()]), ('kiosco', [stage_upload()])])

        report = dispatcher.dispatch(order.id)

        assert report.skipped_items == ['poster']
        assert list_outputs(print_base_path) == [f's4x6/Ana_Perez_{STAMP}_001.jpg']
        assert repository.get_order(order.id).files_copied is True

    def test_render_failure_copies_raw_bytes(self, dispatcher, make_order, stage_upload,
                                             print_base_path, error_messages):
        corrupt = b'\xff\xd8 this is not really a jpeg'
        order = make_order([('kiosco', [stage_upload(corrupt)])])

        report = dispatcher.dispatch(order.id)

        target = print_base_path / 's4x6' / f'Ana_Perez_{STAMP}_001.jpg'
        assert report.fallback_copies == [target]
        assert target.read_bytes() == corrupt
        assert any('copying raw bytes' in m for m in error_messages)

    def test_edit_params_are_used(self, dispatcher, make_order, stage_upload, print_base_path):
        photo = stage_upload(make_image_bytes((400, 400)), editParams={'fit': 'contain'})
        order = make_order([('kiosco', [photo])])

        dispatcher.dispatch(order.id)

        output = open_jpeg((print_base_path / 's4x6' / f'Ana_Perez_{STAMP}_001.jpg').read_bytes())
        # Contain on a portrait format leaves white bands above and below
        assert min(output.getpixel((60, 5))) > 240

    def test_imported_sources_are_removed(self, dispatcher, make_order, stage_upload, tmp_path,
                                          temp_upload_dir):
        usb = tmp_path / 'usb'
        usb.mkdir()
        imported = usb / 'IMG_0001.JPG'
        imported.write_bytes(make_image_bytes())
        uploaded = stage_upload()
        order = make_order([('kiosco', [{'id': 'usb1', 'sourcePath': str(imported)}, uploaded])])

        report = dispatcher.dispatch(order.id)

        assert not imported.exists()
        assert report.deleted_sources == [imported]
        assert (temp_upload_dir / uploaded['fileName']).exists()

    def test_unknown_order(self, dispatcher):
        with pytest.raises(OrderNotFoundError):
            dispatcher.dispatch('missing')

    def test_unwritable_hot_folder(self, dispatcher, make_order, stage_upload, print_base_path, repository):
        print_base_path.write_text('not a directory')
        order = make_order([('kiosco', [stage_upload()])])

        with pytest.raises(DispatchError):
            dispatcher.dispatch(order.id)
        assert repository.get_order(order.id).files_copied is False

    def test_client_name_fallback(self, dispatcher, make_order, stage_upload, print_base_path):
        order = make_order([('kiosco', [stage_upload()])], client_name='')

        dispatcher.dispatch(order.id)

        assert list_outputs(print_base_path) == [f's4x6/cliente_{STAMP}_001.jpg']


class TestDispatchOnce:
    """An order reaches the hot folders at most once."""

    def test_second_dispatch_is_noop(self, dispatcher, make_order, stage_upload, print_base_path):
        order = make_order([('kiosco', [stage_upload()])])

        first = dispatcher.dispatch(order.id)
        second = dispatcher.dispatch(order.id)

        assert not first.already_dispatched
        assert second.already_dispatched
        assert second.written == []
        assert len(list_outputs(print_base_path)) == 1

    def test_concurrent_triggers_dispatch_once(self, dispatcher, make_order, stage_upload, print_base_path):
        order = make_order([('kiosco', [stage_upload(), stage_upload(), stage_upload()])])
        reports = []
        errors = []

        def trigger():
            try:
                reports.append(dispatcher.dispatch(order.id))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=trigger) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sum(1 for r in reports if not r.already_dispatched) == 1
        assert len(list_outputs(print_base_path)) == 3
        assert dispatcher_module._order_locks == {}

    def test_flag_set_elsewhere_is_respected(self, dispatcher, make_order, stage_upload,
                                             print_base_path, repository):
        order = make_order([('kiosco', [stage_upload()])])
        repository.mark_files_copied(order.id)

        report = dispatcher.dispatch(order.id)

        assert report.already_dispatched
        assert list_outputs(print_base_path) == []

    def test_two_dispatchers_share_the_gate(self, dispatcher, repository, small_registry, renderer,
                                            print_base_path, temp_upload_dir, make_order, stage_upload):
        other = HotFolderDispatcher(repository, small_registry, renderer, print_base_path, temp_upload_dir)
        order = make_order([('kiosco', [stage_upload()])])

        dispatcher.dispatch(order.id)

        assert other.dispatch(order.id).already_dispatched

    def test_dispatch_state(self, dispatcher, make_order, stage_upload, repository):
        order = make_order([('kiosco', [stage_upload()])])
        assert dispatcher.state_of(order) == DispatchState.PENDING

        dispatcher.dispatch(order.id)

        assert dispatcher.state_of(repository.get_order(order.id)) == DispatchState.DISPATCHED

    def test_report_to_dict(self, dispatcher, make_order, stage_upload):
        order = make_order([('kiosco', [stage_upload()])])

        data = dispatcher.dispatch(order.id).to_dict()

        assert data['orderId'] == order.id
        assert data['alreadyDispatched'] is False
        assert len(data['written']) == 1

    def test_same_minute_orders_do_not_overwrite(self, dispatcher, make_order, stage_upload,
                                                 print_base_path):
        first = make_order([('kiosco', [stage_upload(), stage_upload()])])
        second = make_order([('kiosco', [stage_upload()]), ('square-large', [stage_upload()])])

        first_report = dispatcher.dispatch(first.id)
        second_report = dispatcher.dispatch(second.id)

        assert list_outputs(print_base_path) == [
            f's4x6/Ana_Perez_{STAMP}_001.jpg',
            f's4x6/Ana_Perez_{STAMP}_002.jpg',
            f's4x6/Ana_Perez_{STAMP}_003.jpg',
            f's6x6/Ana_Perez_{STAMP}_004.jpg',
        ]
        assert set(first_report.written).isdisjoint(second_report.written)

    def test_existing_file_is_kept(self, dispatcher, make_order, stage_upload, print_base_path):
        spooled = print_base_path / 's4x6' / f'cliente_{STAMP}_001.jpg'
        spooled.parent.mkdir(parents=True)
        spooled.write_bytes(b'queued for the printer')
        order = make_order([('kiosco', [stage_upload()])], client_name='')

        report = dispatcher.dispatch(order.id)

        assert spooled.read_bytes() == b'queued for the printer'
        assert report.written == [print_base_path / 's4x6' / f'cliente_{STAMP}_002.jpg']

    def test_order_locks_are_released(self, dispatcher, make_order, stage_upload):
        orders = [make_order([('kiosco', [stage_upload()])]) for _ in range(5)]

        for order in orders:
            dispatcher.dispatch(order.id)
            dispatcher.dispatch(order.id)
        with pytest.raises(OrderNotFoundError):
            dispatcher.dispatch('missing')

        assert dispatcher_module._order_locks == {}
