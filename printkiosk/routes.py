"""
Flask routes for the print kiosk
Uploads, order lifecycle, editor previews and hot-folder dispatch
"""

import json

from flask import Blueprint, Response, jsonify, request
from loguru import logger

from .errors import (
    KioskError, ValidationError, OrderNotFoundError, InvalidEditParametersError,
    UnsupportedImageError
)
from .models import EditParameters, OrderStatus
from .services import get_services
from .uploads import save_upload


bp = Blueprint('kiosk', __name__, url_prefix='/api')


@bp.errorhandler(KioskError)
def handle_kiosk_error(e: KioskError):
    """Map kiosk errors to JSON responses"""
    if isinstance(e, ValidationError):
        status = 400
    elif isinstance(e, OrderNotFoundError):
        status = 404
    elif isinstance(e, UnsupportedImageError):
        status = 415
    else:
        status = 500
    logger.warning(f"{request.method} {request.path} failed with {e.__class__.__name__}: {e.message}")
    return jsonify({'success': False, 'error': e.message, **e.to_dict()}), status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


@bp.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'})


@bp.route('/formats', methods=['GET'])
def list_formats():
    """Print formats known to the registry"""
    registry = get_services().registry
    return jsonify({
        'formats': [
            {
                'sku': fmt.sku,
                'name': fmt.name,
                'folder': fmt.folder,
                'imageWidth': fmt.image_width,
                'imageHeight': fmt.image_height,
                'canvasWidth': fmt.canvas_width,
                'canvasHeight': fmt.canvas_height,
                'aspectRatio': fmt.aspect_ratio,
                'pairBilling': fmt.pair_billing,
            }
            for fmt in registry
        ]
    })


@bp.route('/upload-photos', methods=['POST'])
def upload_photos():
    """Store uploaded photos in the temp upload folder"""
    config = get_services().config
    files = request.files.getlist('photos')
    if not files:
        raise ValidationError("No photos uploaded")

    stored = []
    for file in files:
        file_name = save_upload(
            file.read(),
            file.filename,
            config.TEMP_UPLOAD_DIR,
            allowed_extensions=config.ALLOWED_EXTENSIONS,
            max_size=config.MAX_UPLOAD_SIZE,
        )
        stored.append(file_name)

    return jsonify({'success': True, 'files': stored})


@bp.route('/orders', methods=['POST'])
def create_order():
    """Create an order from the checkout cart"""
    data = _json_body()
    client = data.get('client')
    items = data.get('items')
    total = data.get('total')

    if not client or not items or not total:
        raise ValidationError("Missing required fields",
                              details={'required': ['client', 'items', 'total']})
    if not isinstance(client, dict) or not isinstance(items, list):
        raise ValidationError("'client' must be an object and 'items' a list")

    try:
        total = float(total)
    except (TypeError, ValueError):
        raise ValidationError("Order total must be a number", details={'total': total})

    order = get_services().repository.create_order(
        client=client,
        items=items,
        total=total,
        payment_method=data.get('paymentMethod'),
        status=data.get('status') or OrderStatus.PENDING.value,
    )
    return jsonify({'success': True, 'orderId': order.id, 'orderNumber': order.order_number}), 201


@bp.route('/orders/<order_id>', methods=['GET'])
def get_order(order_id):
    services = get_services()
    order = services.repository.get_order(order_id)
    payload = order.to_dict()
    payload['dispatchState'] = services.dispatcher.state_of(order).value
    return jsonify({'success': True, 'order': payload})


@bp.route('/orders/finalize', methods=['POST'])
def finalize_order():
    """
    Mark an order paid and send it to the printer.

    A dispatch failure is logged but does not fail the request: the payment
    already went through and the operator can re-validate the order.
    """
    order_id = _json_body().get('orderId')
    if not order_id:
        raise ValidationError("Missing orderId")

    services = get_services()
    order = services.repository.get_order(order_id)
    if order.status == OrderStatus.PAID and order.files_copied:
        return jsonify({'success': True, 'order': order.to_dict(), 'alreadyPaid': True})

    if order.status != OrderStatus.PAID:
        order = services.repository.update_status(order_id, OrderStatus.PAID.value)

    dispatch = None
    try:
        dispatch = services.dispatcher.dispatch(order_id).to_dict()
    except KioskError as e:
        logger.error(f"Order {order_id} paid but dispatch failed: {e.message}")
    except OSError as e:
        logger.error(f"Order {order_id} paid but dispatch failed: {e}")

    order = services.repository.get_order(order_id)
    return jsonify({'success': True, 'order': order.to_dict(), 'dispatch': dispatch})


@bp.route('/admin/orders/validate', methods=['POST'])
def validate_order():
    """Operator validation: mark validated and dispatch, reporting dispatch errors"""
    services = get_services()
    admin_token = services.config.ADMIN_TOKEN
    if not admin_token or request.headers.get('Authorization') != admin_token:
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401

    order_id = _json_body().get('orderId')
    if not order_id:
        raise ValidationError("Missing orderId")

    services.repository.update_status(order_id, OrderStatus.VALIDATED.value)
    report = services.dispatcher.dispatch(order_id)

    return jsonify({
        'success': True,
        'message': 'Order validated and files moved',
        'dispatch': report.to_dict(),
    })


@bp.route('/editor-frame', methods=['POST'])
def editor_frame():
    """
    Crop frame and live-view scale the editor opens a photo with.

    Body: imageWidth, imageHeight, either a format sku or an explicit
    aspectRatio, and optionally the photo's editParams.
    """
    data = _json_body()
    try:
        image_size = (int(data['imageWidth']), int(data['imageHeight']))
    except (KeyError, TypeError, ValueError):
        raise ValidationError("imageWidth and imageHeight must be integers",
                              details={'required': ['imageWidth', 'imageHeight']})
    if image_size[0] <= 0 or image_size[1] <= 0:
        raise ValidationError("Image dimensions must be positive", details={'size': list(image_size)})

    services = get_services()
    if data.get('sku'):
        fmt = services.registry.get(data['sku'])
        if fmt is None:
            raise ValidationError(f"Unknown format: {data['sku']}", details={'known': services.registry.skus})
        requested_ratio = fmt.aspect_ratio
    else:
        try:
            requested_ratio = float(data['aspectRatio'])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Either 'sku' or a numeric 'aspectRatio' is required")
        if requested_ratio <= 0:
            raise ValidationError("aspectRatio must be positive", details={'aspectRatio': requested_ratio})

    edit_params = EditParameters.from_dict(data.get('editParams') or {})
    preview_renderer = services.preview_renderer
    frame_ratio = preview_renderer.frame_for(image_size, requested_ratio)

    return jsonify({
        'success': True,
        'frameAspectRatio': frame_ratio,
        'fitScale': preview_renderer.view_fit_scale(image_size, edit_params, frame_ratio),
    })


@bp.route('/preview', methods=['POST'])
def render_preview():
    """Render an editor preview for an uploaded photo and its edit parameters"""
    file = request.files.get('file')
    params_json = request.form.get('params')
    if file is None or not params_json:
        raise ValidationError("Incomplete data: 'file' and 'params' are required")

    try:
        params = json.loads(params_json)
    except ValueError:
        raise InvalidEditParametersError('params', params_json, 'not valid JSON')

    edit_params = EditParameters.from_dict(params)
    preview = get_services().preview_renderer.render(file.read(), edit_params, photo_id=file.filename)
    return Response(preview, mimetype='image/jpeg')
