"""Schema v1 - Initial GeoSwap schema.

This version includes tables for:
- Users (profile rows keyed by auth provider id, created with a first listing)
- Listings with coordinates and AI metadata
- Wishlists
- Swap matches
- Chats and messages (messages also carry encoded rate/deal events)
- Rate resolutions (one row per answered rate proposal)

And the functions:
- get_items_within_radius: haversine radius search over listings
- insert_listing_with_location: listing insert used by the AI webhook
"""

LISTING_COLUMNS = '''
    id UUID, user_id UUID, title TEXT, description TEXT, category TEXT,
    price NUMERIC, status TEXT, image_url TEXT, ai_metadata JSONB,
    lat DOUBLE PRECISION, lon DOUBLE PRECISION, created_at TIMESTAMPTZ,
    distance_meters DOUBLE PRECISION
'''

schema = {
    'version': 1,
    'extensions': ['pgcrypto'],
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'username', 'type': 'TEXT'},
                {'name': 'avatar_url', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'category', 'type': 'TEXT'},
                {'name': 'price', 'type': 'NUMERIC(12,2)'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'active'",
                 'check': "status IN ('active', 'sold', 'swapped')"},
                {'name': 'image_url', 'type': 'TEXT'},
                {'name': 'ai_metadata', 'type': 'JSONB', 'nullable': False, 'default': "'{}'::jsonb"},
                {'name': 'lat', 'type': 'DOUBLE PRECISION'},
                {'name': 'lon', 'type': 'DOUBLE PRECISION'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_listings_user', 'columns': ['user_id']},
                {'name': 'idx_listings_status', 'columns': ['status']},
                {'name': 'idx_listings_location', 'columns': ['lat', 'lon']}
            ]
        },
        {
            'name': 'wishlists',
            'columns': [
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'listing_id', 'type': 'UUID', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['user_id', 'listing_id'],
            'foreign_keys': [
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                {'name': 'idx_wishlists_listing', 'columns': ['listing_id']}
            ]
        },
        {
            'name': 'matches',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_1_id', 'type': 'UUID', 'nullable': False},  # proposer
                {'name': 'user_2_id', 'type': 'UUID', 'nullable': False},  # recipient
                {'name': 'listing_1_id', 'type': 'UUID', 'nullable': False},  # offered
                {'name': 'listing_2_id', 'type': 'UUID', 'nullable': False},  # desired
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'",
                 'check': "status IN ('pending', 'accepted', 'rejected')"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['listing_1_id'], 'references': 'listings(id)'},
                {'columns': ['listing_2_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                {'name': 'idx_matches_recipient', 'columns': ['user_2_id', 'status']},
                {'name': 'idx_matches_listing_1', 'columns': ['listing_1_id']},
                {'name': 'idx_matches_listing_2', 'columns': ['listing_2_id']}
            ]
        },
        {
            'name': 'chats',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'listing_id', 'type': 'UUID'},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'unique': [['listing_id', 'buyer_id', 'seller_id']],
            'foreign_keys': [
                {'columns': ['listing_id'], 'references': 'listings(id)', 'on_delete': 'SET NULL'}
            ],
            'indexes': [
                {'name': 'idx_chats_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_chats_seller', 'columns': ['seller_id']}
            ]
        },
        {
            'name': 'messages',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'chat_id', 'type': 'UUID', 'nullable': False},
                {'name': 'sender_id', 'type': 'UUID', 'nullable': False},
                {'name': 'content', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'clock_timestamp()'}
            ],
            'foreign_keys': [
                {'columns': ['chat_id'], 'references': 'chats(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_messages_chat_created', 'columns': ['chat_id', 'created_at DESC']}
            ]
        },
        {
            # One row per answered rate proposal; the primary key makes a second answer fail
            'name': 'rate_resolutions',
            'columns': [
                {'name': 'proposal_id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'chat_id', 'type': 'UUID', 'nullable': False},
                {'name': 'responder_id', 'type': 'UUID', 'nullable': False},
                {'name': 'response', 'type': 'TEXT', 'nullable': False,
                 'check': "response IN ('rate_accepted', 'rate_rejected')"},
                {'name': 'amount', 'type': 'NUMERIC(12,2)'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['chat_id'], 'references': 'chats(id)', 'on_delete': 'CASCADE'}
            ]
        }
    ],
    'functions': [
        {
            'name': 'get_items_within_radius',
            'arguments': 'user_lat DOUBLE PRECISION, user_lon DOUBLE PRECISION, radius_meters DOUBLE PRECISION',
            'returns': f'TABLE ({LISTING_COLUMNS})',
            'volatility': 'STABLE',
            'body': '''
                SELECT * FROM (
                    SELECT
                        l.id, l.user_id, l.title, l.description, l.category,
                        l.price, l.status, l.image_url, l.ai_metadata,
                        l.lat, l.lon, l.created_at,
                        2 * 6371000 * asin(sqrt(
                            power(sin(radians(l.lat - user_lat) / 2), 2) +
                            cos(radians(user_lat)) * cos(radians(l.lat)) *
                            power(sin(radians(l.lon - user_lon) / 2), 2)
                        )) AS distance_meters
                    FROM listings l
                    WHERE l.lat IS NOT NULL AND l.lon IS NOT NULL
                ) candidates
                WHERE candidates.distance_meters <= radius_meters
                ORDER BY candidates.distance_meters
            '''
        },
        {
            'name': 'insert_listing_with_location',
            'arguments': (
                'p_title TEXT, p_description TEXT, p_category TEXT, p_price NUMERIC, '
                'p_ai_metadata JSONB, p_user_id UUID, '
                'p_user_lat DOUBLE PRECISION, p_user_lon DOUBLE PRECISION'
            ),
            'returns': 'SETOF listings',
            'volatility': 'VOLATILE',
            'body': '''
                INSERT INTO users (id) VALUES (p_user_id)
                ON CONFLICT (id) DO NOTHING;

                INSERT INTO listings (
                    user_id, title, description, category, price,
                    image_url, ai_metadata, lat, lon
                ) VALUES (
                    p_user_id, p_title, p_description, p_category, p_price,
                    p_ai_metadata->>'imageUrl', COALESCE(p_ai_metadata, '{}'::jsonb),
                    p_user_lat, p_user_lon
                )
                RETURNING *
            '''
        }
    ],
    'triggers': [
        {
            'name': 'listings_updated_at',
            'table': 'listings',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'touch_listings_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        },
        {
            'name': 'matches_updated_at',
            'table': 'matches',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'touch_matches_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        }
    ],
    'migrations': []
}
