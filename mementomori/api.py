#!/usr/bin/env python3
"""
JSON API over MementoMori instances attached to a bridge network
"""

import logging
import os
from typing import Dict, Optional

from flask import Flask, request, jsonify

from .chain.assets import FungibleToken
from .chain.bridge import BridgeNetwork
from .chain.errors import ChainError
from .chain.keys import AccountKey
from .chain.ledger import Chain
from .errors import MementoMoriError
from .lifecycle import MementoMori, InstanceConfig
from .will import Will

logger = logging.getLogger(__name__)


def _instances_of(network: BridgeNetwork) -> Dict[int, MementoMori]:
    instances = {}
    for chain in network.chains():
        found = chain.find(MementoMori)
        if found:
            instances[chain.selector] = found[0]
    return instances


def create_app(network: BridgeNetwork, instances: Optional[Dict[int, MementoMori]] = None) -> Flask:
    """Flask app serving one MementoMori instance per attached chain"""
    app = Flask(__name__)
    app.config['NETWORK'] = network
    registry = instances if instances is not None else _instances_of(network)

    def lookup(selector: int) -> MementoMori:
        instance = registry.get(selector)
        if instance is None:
            raise LookupError(f"No MementoMori instance on chain {selector}")
        return instance

    def call_body():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        caller = data['caller']
        value = int(data.get('value', 0))
        wills = [Will.from_dict(w) for w in data.get('wills', [])]
        return caller, value, wills

    @app.errorhandler(MementoMoriError)
    def protocol_error(e):
        return jsonify({'success': False, 'error': e.kind, 'message': e.reason}), 400

    @app.errorhandler(ChainError)
    def chain_error(e):
        return jsonify({'success': False, 'error': e.kind, 'message': e.reason}), 400

    @app.errorhandler(LookupError)
    def not_found(e):
        return jsonify({'success': False, 'error': 'NotFound', 'message': str(e)}), 404

    @app.errorhandler(KeyError)
    def missing_field(e):
        return jsonify({'success': False, 'error': 'BadRequest', 'message': f"Missing field {e}"}), 400

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({'success': False, 'error': 'BadRequest', 'message': str(e)}), 400

    @app.route('/api/chains/<int:selector>/config')
    def get_config(selector):
        """Fee, owner and rule bounds of one instance"""
        instance = lookup(selector)
        return jsonify({
            'chain_selector': selector,
            'instance': instance.address,
            'owner': instance.owner(),
            'fee': instance.fee(),
            'fee_token': instance.fee_token,
            'router': instance.router,
            'min_cooldown': instance.rules.min_cooldown,
            'max_cooldown': instance.rules.max_cooldown,
            'max_beneficiaries': instance.rules.max_beneficiaries,
            'trusted_remotes': {str(k): v for k, v in instance.trusted_remotes.items()},
            'now': instance.chain.now,
        })

    @app.route('/api/chains/<int:selector>/wills/<vault>')
    def get_will(selector, vault):
        """Stored fingerprint and pending clock for a vault"""
        instance = lookup(selector)
        chain_selector = int(request.args.get('chain', selector))
        record = instance.store.get(instance.store.key(chain_selector, vault, request.args.get('origin')))
        if record is None:
            return jsonify({'error': 'Will not found'}), 404
        return jsonify({
            'vault': vault.lower(),
            'chain_selector': chain_selector,
            'will_hash': record.commitment,
            'request_time': record.request_time,
            'armed_by': record.armed_by,
            'pending': record.pending,
        })

    @app.route('/api/chains/<int:selector>/wills/<action>', methods=['POST'])
    def save_will(selector, action):
        """Create, update or cancel wills"""
        instance = lookup(selector)
        caller, value, wills = call_body()
        hashes = instance.chain.transact(caller, instance.address, 'save_will', action, wills, value=value)
        return jsonify({'success': True, 'will_hashes': hashes})

    @app.route('/api/chains/<int:selector>/execution/request', methods=['POST'])
    def request_execution(selector):
        instance = lookup(selector)
        caller, value, wills = call_body()
        instance.chain.transact(caller, instance.address, 'request_execution', wills, value=value)
        return jsonify({
            'success': True,
            'time_remaining': [instance.time_remaining(w) for w in wills],
        })

    @app.route('/api/chains/<int:selector>/execution', methods=['POST'])
    def execute(selector):
        instance = lookup(selector)
        caller, value, wills = call_body()
        results = instance.chain.transact(caller, instance.address, 'execute', wills, value=value)
        return jsonify({'success': True, 'results': results})

    @app.route('/api/chains/<int:selector>/clock', methods=['POST'])
    def advance_clock(selector):
        """Move a chain's clock forward"""
        instance = lookup(selector)
        data = request.get_json(silent=True) or {}
        now = instance.chain.advance(int(data.get('seconds', 0)))
        return jsonify({'success': True, 'now': now})

    @app.route('/api/bridge/deliver', methods=['POST'])
    def deliver():
        """Deliver every queued bridge message"""
        results = network.deliver_pending()
        return jsonify({
            'success': True,
            'messages': [
                {
                    'message_id': message_id,
                    'status': status.value,
                    'reason': network.failures.get(message_id),
                }
                for message_id, status in results
            ],
        })

    return app


def dev_network(selectors=(1, 2)) -> BridgeNetwork:
    """Bridge network with a funded MementoMori instance on each chain"""
    network = BridgeNetwork()
    owner = AccountKey()
    instances = []
    for selector in selectors:
        chain = Chain(selector)
        router = network.attach(chain)
        fee_token = chain.deploy(FungibleToken, "Bridge Fee", "LINK", label="fee-token")
        config = InstanceConfig.from_env(fee_token=fee_token.address)
        instance = MementoMori.deploy(chain, owner.address, config, router.address)
        fee_token.mint(instance.address, 10 ** 18)
        instances.append(instance)

    for instance in instances:
        for remote in instances:
            if remote is not instance:
                instance.chain.transact(owner.address, instance.address, 'set_trusted_remote',
                                        remote.chain.selector, remote.address)
    logger.info("Dev network ready on chains %s, owner %s", list(selectors), owner.address)
    return network


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app = create_app(dev_network())
    port = int(os.environ.get("PORT", 10000))
    app.run(
        host="0.0.0.0",
        port=port,
        debug=False
    )
